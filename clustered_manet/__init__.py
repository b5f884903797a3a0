from clustered_manet.config import PROFILES, ExperimentConfig, get_profile
from clustered_manet.errors import AddressExhaustionError, ConfigurationError, ManetError
from clustered_manet.experiment import Experiment, run_experiment
from clustered_manet.flowstats import SimulationResult

__version__ = "0.1.0"

__all__ = [
    "AddressExhaustionError",
    "ConfigurationError",
    "Experiment",
    "ExperimentConfig",
    "ManetError",
    "PROFILES",
    "SimulationResult",
    "get_profile",
    "run_experiment",
]
