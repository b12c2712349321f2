"""
Study definitions and the factor-scores command line.
"""

import pandas as pd
import pytest

from factor_scores import ConfigurationError, from_frame, plan_columns
from factor_scores.cli import main
from factor_scores.studies import get_study, list_studies


@pytest.mark.parametrize("name", ['teachers', 'uniben', 'predictors'])
def test_study_plan_is_consistent(name):
    study = get_study(name)
    outputs = study.output_columns()
    assert len(outputs) == len(set(outputs))
    for step in study.steps:
        assert step.name in study.registry

    # a dataset holding exactly the indicators passes plan validation
    indicators = sorted({item for step in study.steps for item in step.scale.indicators()})
    plan_columns(from_frame(pd.DataFrame(columns=indicators, dtype=float)), study.steps)


def test_teachers_column_names():
    study = get_study('teachers')
    assert study.output_columns() == [
        'Engagement_Factor', 'BurnoutEE', 'Burnout_CY', 'Burnout_RP', 'Burnout_DEP',
        'TRIQ_Prom', 'TRIQ_Ped', 'TRIQ_Trad', 'CoopLea', 'Metacognitive',
        'Teacher_Self_Efficacy']
    engagement = study.registry.get('Engagement')
    assert len(engagement.residual_covariances) == 9


def test_uniben_burnout_is_derived():
    study = get_study('uniben')
    burn_cor = study.registry.get('Burn_cor')
    base = study.registry.get('Burnout')
    assert burn_cor.base is base
    assert base.residual_covariances == ()
    assert [str(c) for c in burn_cor.added_constraints()] == ['Q58_burnout_8riv ~~ Q58_burnout_9riv']
    assert study.steps[-1].scale is burn_cor
    assert study.score_position == 'prepend'


def test_unknown_study():
    assert list_studies() == ['teachers', 'uniben', 'predictors']
    with pytest.raises(ConfigurationError):
        get_study('pilot')


@pytest.fixture(scope="module")
def predictors_csv(tmp_path_factory, simulate):
    study = get_study('predictors')
    structure = {factor.name: list(factor.indicators)
                 for step in study.steps for factor in step.scale.factors}
    frame = simulate(structure, n=400, seed=21)
    # five-point codes as stored in the survey file
    frame = frame.round().clip(1, 5)
    frame.insert(0, 'ID', range(1, len(frame) + 1))
    frame.loc[10, 'Q11_appartenenzaorg_3'] = None

    path = tmp_path_factory.mktemp("cli") / "Predictors_Ben_1.csv"
    frame.to_csv(path, index=False)
    return path


class TestCLI:

    def test_list(self, capsys):
        assert main(['list']) == 0
        out = capsys.readouterr().out
        assert 'uniben' in out
        assert 'Burn_cor' in out

    def test_run(self, tmp_path, predictors_csv, capsys):
        output = tmp_path / "PredictorsBen_Factors.csv"
        code = main(['run', '--study', 'predictors', '--input', str(predictors_csv),
                     '--output', str(output), '--export-dir', str(tmp_path / "diag")])
        assert code == 0

        frame = pd.read_csv(output, encoding='utf-8-sig')
        # scores prepended, the last scale first
        assert list(frame.columns[:6]) == ['APP', 'SOVR_LAV', 'SUPP_Dir', 'GroupTech',
                                           'Parents', 'GestDisc']
        assert len(frame) == 400
        assert 'CFA FIT REPORT: Appartenenza' in capsys.readouterr().out
        assert any((tmp_path / "diag").iterdir())

    def test_modindices(self, predictors_csv, capsys):
        code = main(['modindices', '--study', 'predictors', '--scale', 'Appartenenza',
                     '--input', str(predictors_csv), '--min-improvement', '5'])
        assert code == 0
        assert 'MODIFICATION INDICES: Appartenenza' in capsys.readouterr().out

    def test_missing_input_exits_1(self, tmp_path):
        assert main(['run', '--study', 'uniben', '--input', str(tmp_path / "none.sav"),
                     '--output', str(tmp_path / "out.sav")]) == 1

    def test_unknown_scale_exits_1(self, predictors_csv):
        assert main(['modindices', '--study', 'predictors', '--scale', 'Nope',
                     '--input', str(predictors_csv)]) == 1

    def test_usage_error_exits_2(self):
        with pytest.raises(SystemExit) as excinfo:
            main(['run'])
        assert excinfo.value.code == 2
