"""
Claims Severity Pipeline
========================

Cross-validated modelling of insurance claim loss.

Modules:
    - data_loader: Configuration and CSV ingestion
    - schema: Static feature schema (id, target, categorical, numeric)
    - preprocessing: Target encoding and min/max rescaling
    - model: Penalized regression, decision tree and boosted tree trainers
    - tuning: K-fold grid search scored by MAE
    - evaluation: Metrics, CV reports and plots
    - prediction: Test-table prediction and export
    - eda: Exploratory Data Analysis
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
