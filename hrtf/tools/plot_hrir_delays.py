#!/usr/bin/env python3
"""Print or plot the per-IR delays (onsets included) of an imported SOFA set"""

import sys
import argparse

import matplotlib
import matplotlib.pyplot as plt

from hrtf.load_sofa import load_sofa_file


def delay_rows(hdata=None):
    """One row per (field, elevation, azimuth, channel), mirrored rows included."""
    rows = []
    for fi, field in enumerate(hdata.fds):
        for ei, elev in enumerate(field.evs):
            for ai, azd in enumerate(elev.azs):
                for ti in range(hdata.channels):
                    rows.append(
                        {
                            "field": fi,
                            "elevation": ei,
                            "azimuth": ai,
                            "channel": ti,
                            "elevation_deg": elev.elevation,
                            "azimuth_deg": azd.azimuth,
                            "delay": float(azd.delays[ti]),
                            "mirrored": ei < field.ev_start,
                        }
                    )
    return rows


def print_delays(hdata=None, file=None):
    if file is None:
        file = sys.stdout

    print("field,elevation,azimuth,channel,delay_ms", file=file)
    for row in delay_rows(hdata):
        print(
            "{},{:+.2f},{:.2f},{},{:.4f}".format(
                row["field"], row["elevation_deg"], row["azimuth_deg"], row["channel"], row["delay"] * 1000
            ),
            file=file,
        )


def plot_delays(hdata=None, field_idx=0, channel=0, title="Delay vs Azimuth", save=None):
    rows = [r for r in delay_rows(hdata) if r["field"] == field_idx and r["channel"] == channel]

    fig = plt.figure(figsize=(10, 6))
    for ei, elev in enumerate(hdata.fds[field_idx].evs):
        elev_rows = [r for r in rows if r["elevation"] == ei]
        plt.plot(
            [r["azimuth_deg"] for r in elev_rows],
            [r["delay"] * 1000 for r in elev_rows],
            marker="o",
            label="{:+.1f} deg".format(elev.elevation),
        )
    plt.xlabel("Azimuth (degrees)")
    plt.ylabel("Delay (ms)")
    plt.title(title)
    plt.legend()
    plt.grid(True)
    plt.tight_layout()

    if save:
        plt.savefig(save)
        plt.close(fig)
    return fig


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Print or plot HRIR delays vs azimuth for a SOFA file.")
    parser.add_argument("sofa_file", help="Path to the .sofa file")
    parser.add_argument("--field", type=int, default=0, help="field index to plot (default: %(default)s)")
    parser.add_argument("--channel", type=int, default=0, help="channel to plot (default: %(default)s)")
    parser.add_argument("--threads", type=int, default=2, help="magnitude worker threads (default: %(default)s)")
    parser.add_argument("--fft_size", type=int, default=65536, help="FFT size (default: %(default)s)")
    parser.add_argument("--csv", action="store_true", help="print the delays as CSV instead of plotting")
    parser.add_argument("--save", metavar="OUTPUT.png", help="Save the plot to a PNG file instead of displaying it")
    parser.add_argument("--title", default="Delay vs Azimuth", help="Plot title (default: Delay vs Azimuth)")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    hdata = load_sofa_file(args.sofa_file, num_threads=args.threads, fft_size=args.fft_size, trunc_size=1)

    if args.csv:
        print_delays(hdata)
        return

    if args.save:
        matplotlib.use("Agg")

    plot_delays(hdata, args.field, args.channel, args.title, args.save)

    if args.save:
        print("Plot saved to {}".format(args.save))
    else:
        plt.show()


if __name__ == "__main__":
    main()
