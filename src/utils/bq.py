from google.cloud import bigquery
import pandas as pd

from src.definitions import BQ_DATASET, GOOGLE_CLOUD_PROJECT


class BQ:
    def __init__(self, project_id=None, dataset=BQ_DATASET):
        self.project_id = project_id or GOOGLE_CLOUD_PROJECT
        self.dataset = dataset
        self.client = bigquery.Client(project=self.project_id)

    def to_dataframe(
        self,
        query: str,
        job_config: bigquery.QueryJobConfig = None,
        dtypes: dict = None,
    ) -> pd.DataFrame:
        """
        Execute a query and return the results as a pandas DataFrame.
        """
        df = self.client.query(query, job_config=job_config).result().to_dataframe()
        if dtypes:
            df = df.astype(dtypes)
        return df

    def write_to(self, df: pd.DataFrame, table_name: str) -> None:
        """
        Replace `table_name` in the write dataset with the contents of df.
        """
        table_id = f"{self.project_id}.{self.dataset}.{table_name}"
        job_config = bigquery.LoadJobConfig(write_disposition=bigquery.WriteDisposition.WRITE_TRUNCATE)
        self.client.load_table_from_dataframe(df, table_id, job_config=job_config).result()
