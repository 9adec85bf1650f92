"""RabbitMQ installer (declarative, convergent).

Core design goals:
- One validated descriptor drives every run
- Idempotent resources: a second run with the same input changes nothing
- Rendered config is checked before anything on the host is touched
- Destructive actions (wiping broker state) only when explicitly authorised
- Centralized logging
"""

__all__ = []
