import argparse
from typing import List, Optional, Union

from ..pipelines.mpprob import MPProbConfig

PROGRAM_CHOICES = ('mpMap', 'qtl', 'happy')
MAPFX_CHOICES = ('haldane', 'kosambi')


def parse_chromosomes(value: Optional[str]) -> Optional[List[Union[str, int]]]:
    """Comma-separated chromosome names; '#k' selects the k-th map chromosome"""
    if not value:
        return None
    chroms: List[Union[str, int]] = []
    for part in value.split(','):
        part = part.strip()
        if not part:
            continue
        chroms.append(int(part[1:]) if part.startswith('#') else part)
    return chroms or None


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments for the founder probability pipeline"""
    parser = argparse.ArgumentParser(
        description="Founder-origin probabilities for multi-parent RIL populations",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--founders", "-F", required=True,
                       help="Founder genotype file (CSV/TSV, ID column then markers)")
    parser.add_argument("--finals", "-f", required=True,
                       help="Final line genotype file (CSV/TSV, ID column then markers)")
    parser.add_argument("--map", "-m", required=True,
                       help="Genetic map file with SNP, CHROM and POS (cM) columns")
    parser.add_argument("--pedigree", "-p", required=True,
                       help="Pedigree file with ID, Mother, Father columns")

    # Optional arguments
    parser.add_argument("--ibd", default=None, dest='ibd_file',
                       help="Founder-index (IBD) matrix file, required with --use-ibd")
    parser.add_argument("--outputdir", "-o", default="./MPProb_results",
                       help="Output directory")
    parser.add_argument("--chr", default=None,
                       help="Comma-separated chromosomes (names, or #k for the k-th)")
    parser.add_argument("--step", type=float, default=0,
                       help="Grid step in cM (0 = markers only, < 0 = interval midpoints)")
    parser.add_argument("--no-markers", action='store_false', dest='mrkpos',
                       help="Exclude marker positions from a stepped grid")
    parser.add_argument("--mapfx", choices=MAPFX_CHOICES, default='haldane',
                       help="Map function")
    parser.add_argument("--program", choices=PROGRAM_CHOICES, default='qtl',
                       help="Probability computation strategy")
    parser.add_argument("--threshold", type=float, default=0.7,
                       help="Founder calling threshold")
    parser.add_argument("--no-calls", action='store_false', dest='est',
                       help="Skip founder calling")
    parser.add_argument("--use-ibd", action='store_true', dest='ibd',
                       help="Compute from the IBD matrix instead of genotypes")
    parser.add_argument("--generations", type=int, default=5,
                       help="Breeding generations assumed by the happy strategy")
    parser.add_argument("--geprob", type=float, default=1e-4,
                       help="Genotyping error probability")
    parser.add_argument("--missing-value", default="-9",
                       help="Allele code used for missing calls")

    # Execution
    parser.add_argument("--cpu", type=int, default=1,
                       help="Worker processes over chromosomes (0 = all cores)")
    parser.add_argument("--timeout", type=float, default=None,
                       help="Seconds allowed per chromosome")
    parser.add_argument("--tempdir", default=None, dest='tempfiledirectory',
                       help="Parent directory for scratch files")
    parser.add_argument("--happy-command", default=None,
                       help="External haplotype reconstruction executable")
    parser.add_argument("--hdf5", action='store_true',
                       help="Also write results to HDF5")
    parser.add_argument("--quiet", "-q", action='store_false', dest='verbose',
                       help="Suppress progress output")

    parser.set_defaults(mrkpos=True, est=True, ibd=False, verbose=True)

    return parser.parse_args(argv)


def config_from_args(args) -> MPProbConfig:
    """Build a validated MPProbConfig from parsed arguments"""
    return MPProbConfig(
        chr=parse_chromosomes(args.chr),
        step=args.step,
        mrkpos=args.mrkpos,
        mapfx=args.mapfx,
        ibd=args.ibd,
        threshold=args.threshold,
        program=args.program,
        tempfiledirectory=args.tempfiledirectory,
        generations=args.generations,
        est=args.est,
        geprob=args.geprob,
        cpu=args.cpu,
        timeout=args.timeout,
        verbose=args.verbose,
        happy_command=args.happy_command,
    ).validate()


def parse_missing_value(value: str):
    """Integer allele codes are compared as numbers, anything else as text"""
    try:
        return int(value)
    except ValueError:
        return value
