"""Infrastructure module.

Configuration, logging setup, in-memory persistence, the payment gateway
client and the default event subscribers.
"""
