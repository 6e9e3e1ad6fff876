#!/usr/bin/env python3
"""
Founder-origin probability analysis for multi-parent RIL populations
"""
import sys

from mpmap.cli.utils import parse_args, config_from_args, parse_missing_value
from mpmap.pipelines.mpprob import MPProbPipeline
from mpmap.prob.backends import Program
from mpmap.utils.errors import MPMapError


def main(argv=None):
    args = parse_args(argv)

    try:
        config = config_from_args(args)
        if config.ibd and args.ibd_file is None:
            raise MPMapError("--use-ibd requires --ibd")

        pipeline = MPProbPipeline(output_dir=args.outputdir)
        pipeline.load_data(
            args.founders,
            args.finals,
            args.map,
            args.pedigree,
            ibd_file=args.ibd_file,
            missing_value=parse_missing_value(args.missing_value),
        )
        if Program.parse(config.program).needs_design:
            pipeline.identify_design()
        pipeline.run_analysis(config)
        pipeline.save_results(hdf5=args.hdf5)
    except (MPMapError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
