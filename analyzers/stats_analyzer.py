import logging

import numpy as np
import pandas as pd
from scipy import stats

from models import make_json_serializable
from .column_profiler import sheet_to_frame


class AnalysisError(ValueError):
    """Raised when a requested analysis cannot run on the selected data"""


class StatsAnalyzer:
    """Statistical analyses over the numeric columns of a stored sheet"""

    def __init__(self):
        self.handlers = {
            'basic_stats': self._basic_stats,
            'correlation': self._correlation,
            'trend_analysis': self._trend_analysis,
            'outlier_detection': self._outlier_detection,
        }

    @property
    def supported_types(self):
        return tuple(self.handlers)

    def analyze(self, sheet, analysis_type, columns=None):
        """Run ``analysis_type`` and return ``{summary, insights, statistics}``"""
        handler = self.handlers.get(analysis_type)
        if handler is None:
            raise AnalysisError(f"Unsupported analysis type: {analysis_type}")

        numeric_df = self._numeric_frame(sheet, columns)
        if numeric_df.empty or len(numeric_df.columns) == 0:
            raise AnalysisError("No numeric columns available for analysis")

        logging.info(f"Running {analysis_type} on {len(numeric_df.columns)} column(s)")
        summary, insights, statistics = handler(numeric_df)
        return {
            'summary': summary,
            'insights': insights,
            'statistics': make_json_serializable(statistics),
        }

    def _numeric_frame(self, sheet, columns=None):
        df = sheet_to_frame(sheet)
        if columns:
            missing = [c for c in columns if c not in df.columns]
            if missing:
                raise AnalysisError(f"Selected columns not found: {', '.join(missing)}")
            df = df[list(columns)]

        numeric = {}
        for column in df.columns:
            if column in numeric:
                continue
            values = pd.to_numeric(df[column], errors='coerce')
            # Keep columns where most present values are numbers
            present = df[column].notna().sum()
            if present and values.notna().sum() / present > 0.8:
                numeric[column] = values
        return pd.DataFrame(numeric)

    def _basic_stats(self, df):
        statistics = {}
        insights = []
        for column in df.columns:
            data = df[column].dropna()
            if data.empty:
                continue
            statistics[column] = {
                'count': len(data),
                'missing': int(df[column].isna().sum()),
                'mean': data.mean(),
                'median': data.median(),
                'std': data.std() if len(data) > 1 else 0.0,
                'min': data.min(),
                'max': data.max(),
                'sum': data.sum(),
            }
            if statistics[column]['missing']:
                insights.append(f"Column '{column}' has {statistics[column]['missing']} missing value(s)")
        widest = max(statistics, key=lambda c: statistics[c]['max'] - statistics[c]['min'], default=None)
        if widest is not None:
            insights.append(f"'{widest}' has the widest range of values")
        summary = f"Descriptive statistics for {len(statistics)} numeric column(s)"
        return summary, insights, statistics

    def _correlation(self, df):
        if len(df.columns) < 2:
            raise AnalysisError("Correlation needs at least two numeric columns")

        corr_matrix = df.corr()
        strong_correlations = []
        for i in range(len(corr_matrix.columns)):
            for j in range(i + 1, len(corr_matrix.columns)):
                corr_val = corr_matrix.iloc[i, j]
                if not pd.isna(corr_val) and abs(corr_val) > 0.7:
                    strong_correlations.append({
                        'column1': corr_matrix.columns[i],
                        'column2': corr_matrix.columns[j],
                        'correlation': corr_val,
                        'strength': 'very_strong' if abs(corr_val) > 0.9 else 'strong',
                    })

        insights = [
            f"{c['column1']} and {c['column2']} are {c['strength'].replace('_', ' ')}ly "
            f"{'positively' if c['correlation'] > 0 else 'negatively'} correlated ({c['correlation']:.2f})"
            for c in strong_correlations
        ]
        statistics = {
            'correlation_matrix': corr_matrix.to_dict(),
            'strong_correlations': strong_correlations,
        }
        summary = f"Pearson correlation across {len(df.columns)} numeric columns, {len(strong_correlations)} strong pair(s)"
        return summary, insights, statistics

    def _trend_analysis(self, df):
        statistics = {}
        insights = []
        for column in df.columns:
            data = df[column].dropna()
            if len(data) < 3:
                continue
            x = np.arange(len(data))
            result = stats.linregress(x, data.to_numpy(dtype=float))
            if result.pvalue < 0.05 and result.slope > 0:
                direction = 'increasing'
            elif result.pvalue < 0.05 and result.slope < 0:
                direction = 'decreasing'
            else:
                direction = 'flat'
            statistics[column] = {
                'slope': result.slope,
                'intercept': result.intercept,
                'r_squared': result.rvalue ** 2,
                'p_value': result.pvalue,
                'direction': direction,
            }
            if direction != 'flat':
                insights.append(f"'{column}' shows a {direction} trend (slope {result.slope:.3f} per row)")
        if not statistics:
            raise AnalysisError("Trend analysis needs at least three values in a numeric column")
        summary = f"Linear trend over row order for {len(statistics)} column(s)"
        return summary, insights, statistics

    def _outlier_detection(self, df):
        statistics = {}
        insights = []
        for column in df.columns:
            data = df[column].dropna()
            if len(data) < 4:  # Need minimum data for outlier detection
                continue

            col_outliers = {}

            # Z-score method
            if data.std() > 0:
                z_scores = np.abs(stats.zscore(data))
                z_outliers = data[z_scores > 3]
            else:
                z_outliers = data.iloc[0:0]
            col_outliers['z_score'] = {
                'count': len(z_outliers),
                'percentage': len(z_outliers) / len(data) * 100,
                'values': z_outliers.tolist()[:10],
            }

            # IQR method
            q1, q3 = data.quantile(0.25), data.quantile(0.75)
            iqr = q3 - q1
            lower_bound, upper_bound = q1 - 1.5 * iqr, q3 + 1.5 * iqr
            iqr_outliers = data[(data < lower_bound) | (data > upper_bound)]
            col_outliers['iqr'] = {
                'count': len(iqr_outliers),
                'percentage': len(iqr_outliers) / len(data) * 100,
                'lower_bound': lower_bound,
                'upper_bound': upper_bound,
                'values': iqr_outliers.tolist()[:10],
            }

            statistics[column] = col_outliers
            if len(iqr_outliers):
                insights.append(f"'{column}' has {len(iqr_outliers)} value(s) outside the IQR fences")

        summary = f"Outlier scan (z-score and IQR) over {len(statistics)} column(s)"
        return summary, insights, statistics
