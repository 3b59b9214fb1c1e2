"""Notification adapters."""

from repo_refresher.adapters.notifications.webhook_dispatcher import WebhookDispatcher

__all__ = ["WebhookDispatcher"]
