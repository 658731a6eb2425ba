"""Upstream provider clients."""

from gateway.clients.base import ChatProvider, ChatProviderRouter, MediaProvider

__all__ = ["ChatProvider", "ChatProviderRouter", "MediaProvider"]
