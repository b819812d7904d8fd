"""HTTP surface: WhatsApp webhooks, dashboard API and health checks."""
