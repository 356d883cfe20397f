"""
ETL Pipeline runner for gaze database tables.

This module provides a command-line interface to join and normalize the
tables of one dataset.
"""
import argparse
import logging
from typing import Optional, Tuple

import pandas as pd

from etl.config import PipelineConfig, load_config
from etl.io import load_tables, save_processed
from etl.preprocess import preprocess_pipeline


def setup_logging(verbosity: int = 0) -> None:
    """
    Set up logging with appropriate verbosity.

    Parameters:
    -----------
    verbosity : int, optional
        0 = WARNING, 1 = INFO, 2 = DEBUG, by default 0
    """
    log_levels = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG
    }
    level = log_levels.get(verbosity, logging.DEBUG)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_pipeline(
    data_folder: str,
    config: PipelineConfig,
    output_path: Optional[str] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Run the ETL pipeline.

    Parameters:
    -----------
    data_folder : str
        Folder containing the four exported tables
    config : PipelineConfig
        Pipeline configuration; ``dataset_name`` selects the dataset
    output_path : Optional[str], optional
        Path to save the normalized records, by default None

    Returns:
    --------
    tuple
        (joined, normalized)
    """
    if not config.dataset_name:
        raise ValueError("A dataset name is required to load tables from a folder")

    logging.info(f"Loading dataset '{config.dataset_name}' from {data_folder}")
    tables = load_tables(data_folder, config.dataset_name)

    logging.info("Joining and normalizing tables")
    joined, normalized = preprocess_pipeline(tables, config)

    if output_path:
        logging.info(f"Saving normalized records to {output_path}")
        fmt = "csv" if output_path.lower().endswith(".csv") else "parquet"
        save_processed(normalized, output_path, format=fmt)

    return joined, normalized


def main():
    """
    Main entry point for the ETL pipeline.
    """
    parser = argparse.ArgumentParser(description="Looking-accuracy ETL Pipeline")
    parser.add_argument("--data-folder", type=str, default="data",
                        help="Folder containing the exported tables")
    parser.add_argument("--dataset", type=str,
                        help="Dataset name to restrict the tables to")
    parser.add_argument("--config", type=str,
                        help="Path to a JSON configuration file")
    parser.add_argument("--output", type=str, default="records.parquet",
                        help="Path to save the normalized records")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity (can be used multiple times)")

    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        config = load_config(args.config, dataset_name=args.dataset)
        run_pipeline(
            data_folder=args.data_folder,
            config=config,
            output_path=args.output,
        )
        logging.info("ETL pipeline completed successfully")
    except Exception as e:
        logging.error(f"Error in ETL pipeline: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
