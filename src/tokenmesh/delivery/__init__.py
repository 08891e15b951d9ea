"""Asynchronous callback delivery."""

from .callback import CallbackDelivery

__all__ = ["CallbackDelivery"]
