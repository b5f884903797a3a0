import logging

logger = logging.getLogger(__name__)


class AsciiTrace:
    """One line per packet event: ``<kind> <time> <node> <packet>``.

    Kinds: ``+`` handed to the link layer, ``r`` received, ``d`` dropped.
    """

    def __init__(self, path):
        self.path = path
        self._file = open(path, "w")
        self.lines = 0

    def record(self, kind, time, node, packet):
        self._file.write(f"{kind} {time:.9f} /NodeList/{node.id} {packet.kind} uid={packet.uid} "
                         f"{packet.source} > {packet.destination} size={packet.size} ttl={packet.ttl}\n")
        self.lines += 1

    def close(self):
        if not self._file.closed:
            self._file.close()
            logger.info("Wrote %d trace lines to %s", self.lines, self.path)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
