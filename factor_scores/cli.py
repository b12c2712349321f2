#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Factor score command line interface

    factor-scores list
    factor-scores run --study uniben --input UniBen.sav --output UniBen_F.sav
    factor-scores modindices --study uniben --scale Burnout --input UniBen.sav

Exit codes: 0 success, 1 pipeline error, 2 usage error.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import create_custom_config, setup_logging
from .data_loader import load_dataset
from .errors import FactorScoresError
from .fit_engine import CFAFitter
from .modification import ModificationAdvisor
from .pipeline import ScorePipeline
from .report import format_fit_report, format_modification_report
from .studies import get_study, list_studies
from .writer import write_dataset

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='factor-scores',
        description='CFA factor scores for labelled survey datasets')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--log-file', help='Also write the log to this file')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('list', help='List available studies and their scales')

    run = subparsers.add_parser('run', help='Fit every scale of a study and write scores')
    run.add_argument('--study', required=True, help='Study name (see "list")')
    run.add_argument('--input', help='Input .sav/.csv (default: study input file)')
    run.add_argument('--output', help='Output .sav/.csv (default: study output file)')
    run.add_argument('--export-dir', help='Directory for diagnostic CSV files')
    run.add_argument('--continue-on-error', action='store_true',
                     help='Skip scales that do not converge instead of stopping')
    run.add_argument('--score-method', default='regression', choices=['regression', 'bartlett'],
                     help='Factor score method')

    mi = subparsers.add_parser('modindices', help='Modification indices for one scale')
    mi.add_argument('--study', required=True, help='Study name')
    mi.add_argument('--scale', required=True, help='Scale name within the study')
    mi.add_argument('--input', help='Input .sav/.csv (default: study input file)')
    mi.add_argument('--min-improvement', type=float, default=10.0,
                    help='Minimum modification index to report (default: 10)')
    return parser


def cmd_list() -> int:
    for name in list_studies():
        study = get_study(name)
        print(f"{name}: {study.description}")
        for scale in study.registry:
            marker = "*" if any(step.name == scale.name for step in study.steps) else " "
            factors = ", ".join(scale.factor_names())
            print(f"  {marker} {scale.name:<14} [{factors}]")
    print("* scored by 'run'")
    return 0


def cmd_run(args) -> int:
    study = get_study(args.study)
    config = create_custom_config(score_position=study.score_position,
                                  score_method=args.score_method,
                                  continue_on_nonconvergence=args.continue_on_error)

    dataset = load_dataset(args.input or study.default_input,
                           numeric_prefixes=study.numeric_prefixes)
    result = ScorePipeline(config, export_dir=args.export_dir).run(dataset, study.steps)

    for name, report in result.reports.items():
        print(report)
        if name in result.modifications:
            print(format_modification_report(result.modifications[name],
                                             config.min_improvement, name))
        print()

    output = write_dataset(result.dataset, args.output or study.default_output)
    print(f"✅ {len(result.fits)} scale(s) scored, dataset written: {output}")
    if result.failures:
        print(f"❌ Not converged (no scores): {', '.join(result.failures)}")
        return 1
    return 0


def cmd_modindices(args) -> int:
    study = get_study(args.study)
    scale = study.registry.get(args.scale)
    config = create_custom_config(min_improvement=args.min_improvement)

    dataset = load_dataset(args.input or study.default_input,
                           numeric_prefixes=study.numeric_prefixes)
    fitted = CFAFitter(config).fit(scale, dataset)
    suggestions = ModificationAdvisor(fitted).suggest(args.min_improvement)

    print(format_fit_report(fitted, config))
    print()
    print(format_modification_report(suggestions, args.min_improvement, scale.name))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``factor-scores`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        if args.command == 'list':
            return cmd_list()
        elif args.command == 'run':
            return cmd_run(args)
        return cmd_modindices(args)
    except FactorScoresError as e:
        logger.error(str(e))
        print(f"❌ {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
