from querydiff.export.polars_frame import results_to_dataframe

__all__ = ["results_to_dataframe"]
