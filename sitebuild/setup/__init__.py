"""Runtime support: filesystem helpers, console rendering, notifications and the knowledge store."""
