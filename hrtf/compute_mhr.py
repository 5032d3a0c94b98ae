#!/usr/bin/env python3
"""Import a SOFA HRIR set into a structured grid and compute its onsets and magnitude responses"""

import sys
import logging
import argparse

from setproctitle import setproctitle

from hrtf.errors import HrirError
from hrtf.load_sofa import load_sofa_file
from hrtf.params import load_params

logger = logging.getLogger(__name__)


def log_summary(hdata=None):
    logger.info("-" * 80)
    logger.info("HRIR DATA SET:")
    logger.info("-" * 80)
    logger.info(
        "channels: {}, rate: {} Hz, points: {}, ir size: {}, fft size: {}".format(
            hdata.channels, hdata.ir_rate, hdata.ir_points, hdata.ir_size, hdata.fft_size
        )
    )

    for fi, field in enumerate(hdata.fds):
        logger.info(
            "field {}: distance {:.3f} m, elevations {} (start {}), azimuths {}".format(
                fi, field.distance, len(field.evs), field.ev_start, [len(elev.azs) for elev in field.evs]
            )
        )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-yp",
        "--yaml_params",
        type=str,
        default=None,
        help="yaml input params file (default: %(default)s)",
    )

    args1, remaining = parser.parse_known_args(argv)

    # no defaults here, unset options stay None
    parser = argparse.ArgumentParser(
        description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter, parents=[parser]
    )
    parser.add_argument("-i", "--input_file", type=str, help="SOFA file to import")
    parser.add_argument("-t", "--threads", type=int, help="number of magnitude worker threads")
    parser.add_argument("-f", "--fft_size", type=int, help="FFT size (power of two)")
    parser.add_argument("-tr", "--trunc_size", type=int, help="minimum number of IR sample points")
    parser.add_argument("-r", "--out_rate", type=int, help="output sample rate, 0 keeps the source rate")
    parser.add_argument("-m", "--channel_mode", type=str, help="stereo, mono")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="verbose")
    parser.add_argument("-log", "--logfile", type=str, help="log verbose output to file")

    args = parser.parse_args(remaining)

    return args1.yaml_params, vars(args)


def main(argv=None):
    setproctitle("compute_mhr_main")

    (yaml_file, console_params) = parse_args(argv)

    try:
        params = load_params(yaml_file, console_params)
    except (OSError, ValueError, TypeError) as e:
        sys.exit("\n[ERROR] invalid params: {}".format(e))

    #
    # set debug verbosity
    #
    if params["verbose"]:
        if params["logfile"] is not None:
            logging.basicConfig(filename=params["logfile"], encoding="utf-8", level=logging.INFO)
        else:
            logging.basicConfig(level=logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)

    logger.info("-" * 80)
    logger.info("SETUP:")
    logger.info("-" * 80)
    for p in params:
        logger.info("{} : {}".format(str(p), str(params[p])))

    if params["input_file"] is None:
        sys.exit("\n[ERROR] missing input file.")

    try:
        hdata = load_sofa_file(
            params["input_file"],
            num_threads=params["threads"],
            fft_size=params["fft_size"],
            trunc_size=params["trunc_size"],
            out_rate=params["out_rate"],
            chan_mode=params["channel_mode"],
        )
    except HrirError as e:
        logger.error("compute mhr: {}".format(e))
        sys.exit("\n[ERROR] {}".format(e))

    log_summary(hdata)
    return hdata


#
###############################################################################
# MAIN
###############################################################################
#
if __name__ == "__main__":
    main()
