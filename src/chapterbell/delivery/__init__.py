"""Delivery channels for announcing chapters."""

from chapterbell.delivery.channels import (
    DeliveryChannel,
    DeliveryError,
    DeliveryHandle,
    DiscordChannel,
)

__all__ = [
    "DeliveryChannel",
    "DeliveryError",
    "DeliveryHandle",
    "DiscordChannel",
]
