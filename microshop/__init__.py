"""Shop services: product, user and shipment repositories, use cases, change-event replication and REST APIs."""

__version__ = "0.1.0"