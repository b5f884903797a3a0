import logging
import math
from collections import namedtuple
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)

# ====================================
# Radio constants
# ====================================
SPEED_OF_LIGHT = 299792458.0     # [m/s]
CHANNEL_BANDWIDTH_HZ = 20e6      # 20 MHz HT channel
THERMAL_NOISE_DBM_HZ = -174.0    # kT at 290 K
PREAMBLE_TIME = 20e-6            # PLCP preamble + header [s]
SNR_SLOPE = 2.0                  # logistic steepness of success vs SNR margin [1/dB]

TX_POWER_HIGH_DBM = 100.0        # saturating: every node hears every other node
TX_POWER_MODERATE_DBM = 16.0206  # 40 mW


class PropagationLossModel(Enum):
    FRIIS = "friis"
    LOG_DISTANCE = "log-distance"


class PropagationDelayModel(Enum):
    CONSTANT_SPEED = "constant-speed"


class RateControl(Enum):
    CONSTANT = "constant"
    ADAPTIVE = "adaptive"


WifiMode = namedtuple("WifiMode", ["name", "rate_bps", "min_snr_db"])

# 802.11n, 20 MHz, long guard interval, single stream
HT_MODES = {
    "HtMcs0": WifiMode("HtMcs0", 6.5e6, 2.0),
    "HtMcs1": WifiMode("HtMcs1", 13.0e6, 5.0),
    "HtMcs2": WifiMode("HtMcs2", 19.5e6, 9.0),
    "HtMcs3": WifiMode("HtMcs3", 26.0e6, 11.0),
    "HtMcs4": WifiMode("HtMcs4", 39.0e6, 15.0),
    "HtMcs5": WifiMode("HtMcs5", 52.0e6, 18.0),
    "HtMcs6": WifiMode("HtMcs6", 58.5e6, 20.0),
    "HtMcs7": WifiMode("HtMcs7", 65.0e6, 25.0),
}


# ====================================
# Shared channel
# ====================================
class Channel:
    """Propagation loss + delay shared by every device in the run.

    Built once by ``configure_channel`` and only read afterwards.
    """

    def __init__(self, loss_model, delay_model, frequency_hz, path_loss_exponent,
                 reference_distance, reference_loss_db):
        self._loss_model = loss_model
        self._delay_model = delay_model
        self._wavelength = SPEED_OF_LIGHT / frequency_hz
        self._exponent = path_loss_exponent
        self._reference_distance = reference_distance
        self._reference_loss_db = reference_loss_db

    @property
    def loss_model(self):
        return self._loss_model

    @property
    def delay_model(self):
        return self._delay_model

    # ------------------------------------
    def loss_db(self, distance):
        """Attenuation in dB at ``distance`` metres."""
        if self._loss_model is PropagationLossModel.FRIIS:
            if distance <= 0:
                return 0.0
            loss = 20.0 * math.log10(4.0 * math.pi * distance / self._wavelength)
            return max(0.0, loss)
        if distance <= self._reference_distance:
            return 0.0
        return self._reference_loss_db + 10.0 * self._exponent * math.log10(distance / self._reference_distance)

    def delay(self, distance):
        return distance / SPEED_OF_LIGHT

    def rx_power_dbm(self, tx_power_dbm, distance):
        return tx_power_dbm - self.loss_db(distance)


def configure_channel(config):
    """Build the shared channel from a ``ChannelConfig``."""
    channel = Channel(
        config.loss_model,
        config.delay_model,
        config.frequency_hz,
        config.path_loss_exponent,
        config.reference_distance,
        config.reference_loss_db,
    )
    logger.info("Wireless channel configured: %s loss, %s delay",
                config.loss_model.value, config.delay_model.value)
    return channel


# ====================================
# Physical layer
# ====================================
class Phy:
    """Transmit power, rate control and the packet success model.

    Every device references the same ``Phy`` and through it the same channel.
    """

    def __init__(self, channel, tx_power_dbm, rate_control, data_mode, control_mode,
                 rx_sensitivity_dbm, noise_figure_db, max_retries):
        self.channel = channel
        self.tx_power_dbm = tx_power_dbm
        self.rate_control = rate_control
        self.data_mode = HT_MODES[data_mode]
        self.control_mode = HT_MODES[control_mode]
        self.rx_sensitivity_dbm = rx_sensitivity_dbm
        self.noise_floor_dbm = THERMAL_NOISE_DBM_HZ + 10.0 * math.log10(CHANNEL_BANDWIDTH_HZ) + noise_figure_db
        self.max_retries = max_retries

    @classmethod
    def from_config(cls, config, channel=None):
        if channel is None:
            channel = configure_channel(config)
        phy = cls(
            channel,
            config.tx_power_dbm,
            config.rate_control,
            config.data_mode,
            config.control_mode,
            config.rx_sensitivity_dbm,
            config.noise_figure_db,
            config.max_retries,
        )
        logger.info("Physical layer configured: tx power %.2f dBm, %s rate control (data %s, control %s)",
                    phy.tx_power_dbm, phy.rate_control.value, phy.data_mode.name, phy.control_mode.name)
        return phy

    # ------------------------------------
    def snr_db(self, distance):
        return self.channel.rx_power_dbm(self.tx_power_dbm, distance) - self.noise_floor_dbm

    def in_range(self, distance):
        return self.channel.rx_power_dbm(self.tx_power_dbm, distance) >= self.rx_sensitivity_dbm

    def select_mode(self, distance, broadcast=False):
        """Mode used for one frame over ``distance`` metres."""
        if broadcast:
            return self.control_mode
        if self.rate_control is RateControl.CONSTANT:
            return self.data_mode
        snr = self.snr_db(distance)
        usable = [m for m in HT_MODES.values() if m.min_snr_db <= snr]
        if not usable:
            return HT_MODES["HtMcs0"]
        return max(usable, key=lambda m: m.rate_bps)

    def success_probability(self, distance, mode):
        """Probability that a single frame is decoded at ``distance``."""
        if not self.in_range(distance):
            return 0.0
        margin = self.snr_db(distance) - mode.min_snr_db
        # logistic in tanh form, no overflow for large margins
        p = 0.5 * (1.0 + np.tanh(0.5 * SNR_SLOPE * margin))
        return float(max(0.0, min(1.0, p)))

    def tx_time(self, size_bytes, mode):
        return PREAMBLE_TIME + size_bytes * 8.0 / mode.rate_bps
