from mentalboost.logging_config import setup_logging

setup_logging()
