"""
Looking-accuracy ETL (Extract-Transform-Load) package

- config.py: Pipeline configuration (dataset selection, condition codes, windows)
- io.py: Functions for loading and saving gaze database tables
- preprocess.py: Table joining and condition normalization
"""
