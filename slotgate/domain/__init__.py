"""Domain Layer: value objects, ports and errors shared by every other layer."""
