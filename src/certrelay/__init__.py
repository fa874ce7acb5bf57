"""
Certificate-transparency relay.

Subscribes to the certstream feed, projects each certificate update onto a
compact record, and publishes it to Kafka, PubNub or a Redis Stream.
"""

__version__ = "0.1.0"
