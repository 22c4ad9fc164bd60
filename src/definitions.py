import os

import dotenv

dotenv.load_dotenv()

current_dir = os.path.dirname(os.path.abspath(__file__))

# Get the parent directory
ROOT_DIR = os.path.dirname(current_dir)

LOGGING_FOLDER = f"{ROOT_DIR}/logs/"

GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT", "")
BQ_DATASET = "datascience_dev" if GOOGLE_CLOUD_PROJECT == "data-engineering-sandpit-70a1" else "dsci_customer"
