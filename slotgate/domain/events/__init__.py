"""Domain Events emitted while a call moves through the gateway."""
