"""Import parameters: defaults, yaml params file and console overrides"""

import logging

import yaml

logger = logging.getLogger(__name__)

#
# DEFINES / CONSTANT / GLOBALS
#
DEFAULT_PARAMS = {
    "input_file": None,
    "threads": 2,
    "fft_size": 65536,
    "trunc_size": 32,
    "out_rate": 0,  # 0: keep the source rate
    "channel_mode": "stereo",  # stereo, mono
    "verbose": False,
    "logfile": None,
}

_CHANNEL_MODES = ("stereo", "mono")


def read_yaml_params(yaml_file=None):
    with open(yaml_file, "r") as file:
        params = yaml.safe_load(file)

    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ValueError("invalid yaml params file: {}".format(yaml_file))

    return params


def check_params(params=None):
    fft_size = int(params["fft_size"])
    if fft_size <= 0 or (fft_size & (fft_size - 1)) != 0:
        raise ValueError("FFT size must be a power of two: {}".format(fft_size))

    if int(params["trunc_size"]) <= 0:
        raise ValueError("invalid truncation size: {}".format(params["trunc_size"]))

    if int(params["threads"]) < 1:
        raise ValueError("at least one thread is required: {}".format(params["threads"]))

    if int(params["out_rate"]) < 0:
        raise ValueError("invalid output rate: {}".format(params["out_rate"]))

    if str(params["channel_mode"]).lower() not in _CHANNEL_MODES:
        raise ValueError("unsupported channel mode: {}".format(params["channel_mode"]))

    return params


def load_params(yaml_file=None, console_params=None):
    """Merge defaults, the yaml params file and the console params (console wins when set)."""
    params = dict(DEFAULT_PARAMS)

    if yaml_file is not None:
        params.update(read_yaml_params(yaml_file))

    if console_params is not None:
        for p in console_params:
            if (p in params) and (console_params[p] is not None):
                params[p] = console_params[p]

    params["channel_mode"] = str(params["channel_mode"]).lower()

    return check_params(params)
