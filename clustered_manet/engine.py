import itertools
import logging
import random
import time

import numpy as np
import simpy

logger = logging.getLogger(__name__)


# ====================================
# Engine context
# ====================================
class Engine:
    """Discrete-event clock shared by every component of one run.

    Wraps a single simpy environment together with the random streams used
    by the run. Components receive the engine explicitly instead of reaching
    for a global simulator, so a process can run several experiments one after
    another as long as ``reset()`` is called between them.
    """

    def __init__(self, seed=None, tracer=None):
        self.tracer = tracer
        self.seed = None
        self._init(seed)

    def _init(self, seed):
        if seed is None:
            seed = time.time_ns()
            # consecutive unseeded runs must not repeat each other
            if seed == self.seed:
                seed += 1
        self.seed = seed
        self.env = simpy.Environment()
        self.rng = random.Random(seed)
        self.np_rng = np.random.RandomState(seed % (2 ** 32))
        self.halted = False
        self.stop_time = None
        self._packet_ids = itertools.count()
        logger.debug("Engine initialised with seed %d", seed)

    # ------------------------------------
    @property
    def now(self):
        return self.env.now

    def process(self, generator):
        return self.env.process(generator)

    def timeout(self, delay):
        return self.env.timeout(delay)

    def next_packet_id(self):
        return next(self._packet_ids)

    def schedule(self, delay, callback, *args):
        """Run ``callback(*args)`` after ``delay`` simulated seconds."""
        if delay < 0:
            raise ValueError(f"cannot schedule an event in the past (delay={delay})")
        event = self.env.timeout(delay)
        event.callbacks.append(lambda _event: callback(*args))
        return event

    # ------------------------------------
    def run(self, until):
        """Execute events until the global stop time, then halt."""
        if self.halted:
            raise RuntimeError("engine already ran; call reset() before running again")
        if until <= self.env.now:
            raise ValueError(f"stop time {until} is not after the current time {self.env.now}")
        self.stop_time = until
        logger.info("Running simulation until t=%.3fs", until)
        self.env.run(until=until)
        self.halted = True
        logger.info("Simulation halted at t=%.3fs", self.env.now)

    def reset(self, seed=None):
        """Discard all pending events and start a fresh clock.

        Without ``seed`` a new time-derived seed is drawn; pass ``engine.seed``
        to replay the previous run.
        """
        self._init(seed)

    def destroy(self):
        self.env = None
        self.tracer = None
        self.halted = True

    # ------------------------------------
    def trace(self, kind, node, packet):
        if self.tracer is not None:
            self.tracer.record(kind, self.now, node, packet)
