"""WhatsApp tool-calling assistant for clinic appointment enquiries."""

__version__ = "0.1.0"
