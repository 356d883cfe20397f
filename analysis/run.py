"""
Analysis Pipeline runner for looking-accuracy timecourses.

This module provides a command-line interface to run the analysis pipeline.
"""
import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from analysis.group import (
    accuracy_timecourse, window_summary, subject_window_accuracy,
    compare_conditions, chance_test, mixed_effects_model,
)
from analysis.viz import save_all_visualizations
from etl.config import PipelineConfig, load_config
from etl.io import load_table
from etl.run import run_pipeline, setup_logging


def run_analysis(
    records: pd.DataFrame,
    output_dir: str,
    config: PipelineConfig,
    output_summary_path: Optional[str] = None,
    unit: str = "subject_id",
    generate_visualizations: bool = True,
) -> pd.DataFrame:
    """
    Run the analysis pipeline.

    Parameters:
    -----------
    records : pd.DataFrame
        Normalized gaze records (output of the ETL pipeline)
    output_dir : str
        Directory to save analysis results
    config : PipelineConfig
        Pipeline configuration (window, z value, minimum subjects)
    output_summary_path : Optional[str], optional
        Extra path to save the timecourse summary, by default None
    unit : str, optional
        Column identifying subjects, by default "subject_id"
    generate_visualizations : bool, optional
        Whether to generate visualizations, by default True

    Returns:
    --------
    pd.DataFrame
        Timecourse summary with one row per (condition, t_norm)
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logging.info("Aggregating accuracy within and across subjects")
    subject_points, summary = accuracy_timecourse(
        records, z=config.z_value, min_subjects=config.min_subjects, unit=unit
    )
    subject_points.to_csv(output_path / "subject_accuracy.csv", index=False)
    summary.to_csv(output_path / "timecourse_summary.csv", index=False)

    if output_summary_path:
        logging.info(f"Saving timecourse summary to {output_summary_path}")
        summary.to_csv(output_summary_path, index=False)

    lo, hi = config.window
    logging.info(f"Summarizing window [{lo}, {hi}] ms")
    window_summary(summary, lo, hi).to_csv(output_path / "window_summary.csv", index=False)

    subject_window = subject_window_accuracy(subject_points, lo, hi, unit=unit)
    subject_window.to_csv(output_path / "subject_window.csv", index=False)
    chance_test(subject_window).to_csv(output_path / "chance_test.csv", index=False)

    try:
        comparison = compare_conditions(subject_window, unit=unit, ci=True, seed=0)
        comparison.to_csv(output_path / "condition_comparison.csv", index=False)
    except ValueError as e:
        logging.warning(f"Skipping condition comparison: {e}")

    if subject_window["condition"].nunique() > 1:
        try:
            model_results = mixed_effects_model(subject_window, unit=unit)
            model_results.to_csv(output_path / "mixed_effects_model.csv", index=False)
        except Exception as e:
            logging.error(f"Error running mixed effects model: {e}")

    if generate_visualizations:
        logging.info("Generating visualizations")
        save_all_visualizations(
            summary, subject_window,
            output_path / "visualizations",
            window=(lo, hi),
            t_range=(config.t_norm_min, config.t_norm_max),
        )

    return summary


def main():
    """
    Main entry point for the analysis pipeline.
    """
    parser = argparse.ArgumentParser(description="Looking-accuracy Analysis Pipeline")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--records", type=str,
                        help="Path to normalized records written by the ETL pipeline")
    source.add_argument("--data-folder", type=str,
                        help="Folder containing the exported tables")
    parser.add_argument("--dataset", type=str,
                        help="Dataset name to restrict the tables to")
    parser.add_argument("--config", type=str,
                        help="Path to a JSON configuration file")
    parser.add_argument("--output-dir", type=str, default="analysis_results",
                        help="Directory to save analysis results")
    parser.add_argument("--summary-output", type=str,
                        help="Extra path to save the timecourse summary CSV")
    parser.add_argument("--window-start", type=int,
                        help="Start of the analysis window (ms)")
    parser.add_argument("--window-end", type=int,
                        help="End of the analysis window (ms)")
    parser.add_argument("--unit", type=str, default="subject_id",
                        help="Column identifying the unit of replication")
    parser.add_argument("--no-visualizations", action="store_true",
                        help="Skip generating visualizations")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity (can be used multiple times)")

    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        config = load_config(
            args.config,
            dataset_name=args.dataset,
            window_start_ms=args.window_start,
            window_end_ms=args.window_end,
        )

        if args.records:
            logging.info(f"Loading records from {args.records}")
            records = load_table(args.records)
        else:
            _, records = run_pipeline(args.data_folder, config)

        run_analysis(
            records=records,
            output_dir=args.output_dir,
            config=config,
            output_summary_path=args.summary_output,
            unit=args.unit,
            generate_visualizations=not args.no_visualizations,
        )

        logging.info("Analysis pipeline completed successfully")
    except Exception as e:
        logging.error(f"Error in analysis pipeline: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
