class ManetError(Exception):
    """Base class for experiment errors."""


class ConfigurationError(ManetError, ValueError):
    """Invalid cluster/node counts or out-of-range physical-layer parameters."""


class AddressExhaustionError(ManetError):
    """A cluster needs more host addresses than its subnet can hold."""

    def __init__(self, requested, capacity, network=None):
        self.requested = requested
        self.capacity = capacity
        self.network = network
        where = f" in {network}" if network is not None else ""
        super().__init__(f"cannot assign {requested} addresses{where}: only {capacity} host addresses per subnet")
