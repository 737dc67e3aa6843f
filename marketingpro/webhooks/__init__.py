from marketingpro.webhooks.dispatcher import EventDispatcher

__all__ = ["EventDispatcher"]
