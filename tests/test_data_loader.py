"""
Dataset loader tests: numeric coercion, value labels, SPSS round trip.
"""

import numpy as np
import pandas as pd
import pyreadstat
import pytest

from factor_scores import (
    ConfigurationError,
    FilesystemError,
    coerce_numeric,
    from_frame,
    load_dataset,
)


class TestCoerceNumeric:

    def test_label_text_maps_to_code(self):
        frame = pd.DataFrame({'Q1_x_1': ['Never', 'Often', None, 'Sometimes']})
        labels = {'Q1_x_1': {1.0: 'Never', 2.0: 'Sometimes', 3.0: 'Often'}}
        dataset = coerce_numeric(from_frame(frame, value_labels=labels), prefixes=['Q1_x_'])

        values = dataset.frame['Q1_x_1']
        assert values.iloc[0] == 1.0
        assert values.iloc[1] == 3.0
        assert np.isnan(values.iloc[2])
        assert values.iloc[3] == 2.0

    def test_missing_stays_missing(self):
        frame = pd.DataFrame({'A1': ['1', None, '3']})
        dataset = coerce_numeric(from_frame(frame), columns=['A1'])
        assert dataset.frame['A1'].isna().tolist() == [False, True, False]
        assert (dataset.frame['A1'].fillna(-1) != 0).all()

    def test_uncoercible_value_names_column(self):
        frame = pd.DataFrame({'A1': ['1', 'lots', '3']})
        with pytest.raises(ConfigurationError) as excinfo:
            coerce_numeric(from_frame(frame), columns=['A1'])
        assert excinfo.value.columns == ['A1']

    def test_absent_column(self):
        with pytest.raises(ConfigurationError) as excinfo:
            coerce_numeric(from_frame(pd.DataFrame({'A1': [1]})), columns=['A9'])
        assert excinfo.value.columns == ['A9']

    def test_source_snapshot_untouched(self):
        frame = pd.DataFrame({'A1': ['1', '2']})
        dataset = from_frame(frame)
        coerce_numeric(dataset, columns=['A1'])
        assert not pd.api.types.is_numeric_dtype(dataset.frame['A1'])

    def test_prefix_selects_block_only(self):
        frame = pd.DataFrame({'Q9_a_1': ['1'], 'Q9_a_2': ['2'], 'Name': ['x']})
        dataset = coerce_numeric(from_frame(frame), prefixes=['Q9_a_'])
        assert dataset.frame['Q9_a_2'].dtype == float
        assert dataset.frame['Name'].iloc[0] == 'x'


class TestLoadDataset:

    def test_sav_round_trip(self, tmp_path):
        frame = pd.DataFrame({'Q5_b_1riv': [1.0, 2.0, np.nan, 4.0],
                              'Q5_b_2riv': [2.0, 2.0, 3.0, np.nan]})
        path = tmp_path / "survey.sav"
        pyreadstat.write_sav(frame, str(path),
                             column_labels=['Wellbeing item 1', 'Wellbeing item 2'],
                             variable_value_labels={'Q5_b_1riv': {1.0: 'Low', 4.0: 'High'}})

        dataset = load_dataset(path, numeric_prefixes=['Q5_b_'])

        assert dataset.n_rows == 4
        assert dataset.columns == ['Q5_b_1riv', 'Q5_b_2riv']
        assert np.isnan(dataset.frame['Q5_b_1riv'].iloc[2])
        assert dataset.value_labels['Q5_b_1riv'][4.0] == 'High'
        assert dataset.column_labels['Q5_b_2riv'] == 'Wellbeing item 2'
        assert dataset.source == path

    def test_csv(self, tmp_path):
        path = tmp_path / "survey.csv"
        pd.DataFrame({'A1': [1, 2], 'A2': [3, 4]}).to_csv(path, index=False)
        dataset = load_dataset(path, numeric_columns=['A1', 'A2'])
        assert dataset.frame['A1'].dtype == float

    def test_missing_file(self, tmp_path):
        with pytest.raises(FilesystemError) as excinfo:
            load_dataset(tmp_path / "absent.sav")
        assert "absent.sav" in excinfo.value.path

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_dataset(tmp_path / "survey.xlsx")


class TestSurveyDataset:

    def test_select_unknown_column(self):
        with pytest.raises(ConfigurationError):
            from_frame(pd.DataFrame({'A1': [1]})).select(['A1', 'B1'])

    def test_with_frame_keeps_metadata_of_surviving_columns(self):
        dataset = from_frame(pd.DataFrame({'A1': [1], 'A2': [2]}),
                             column_labels={'A1': 'first', 'A2': 'second'})
        reduced = dataset.with_frame(dataset.frame[['A1']])
        assert reduced.column_labels == {'A1': 'first'}
        assert dataset.column_labels == {'A1': 'first', 'A2': 'second'}
