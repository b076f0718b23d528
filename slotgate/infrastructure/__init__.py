"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the gateway to the outside world (HTTP, clocks, configuration,
console) by implementing the interfaces defined in the domain layer.
"""
