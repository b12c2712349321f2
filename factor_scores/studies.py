"""
Study Definitions

Scale registries and run plans of the three questionnaire studies:

- teachers: HBSC 2022 teacher survey (engagement, burnout, teacher role
  identity, active methodologies, self-efficacy); scores appended
- uniben: university wellbeing survey (GHQ-12, participation, wellbeing,
  burnout with the 8riv/9riv correlated residual); scores prepended
- predictors: work conditions and organisational belonging; scores
  prepended

Author: Survey Factor Scores Team
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .errors import ConfigurationError
from .model_spec import ScaleRegistry, define_factor, define_scale, derive_scale, items
from .pipeline import ScaleStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Study:
    """A registry of scales plus the ordered steps that score them."""

    name: str
    description: str
    registry: ScaleRegistry
    steps: Tuple[ScaleStep, ...]
    numeric_prefixes: Tuple[str, ...]
    default_input: str
    default_output: str
    score_position: str = 'append'
    modification_targets: Tuple[str, ...] = ()

    def output_columns(self) -> List[str]:
        return [col for step in self.steps for col in step.output_columns()]


def _pairs(prefix: str, pairs) -> List[Tuple[str, str]]:
    return [(f"{prefix}_{a}", f"{prefix}_{b}") for a, b in pairs]


def teachers_study() -> Study:
    """HBSC 2022 teachers: five scales, factor names F1..F4 renamed on merge."""
    engagement = define_scale(
        'Engagement',
        [define_factor('F1', items('Q12_engagement', [1, 2, 5, 3, 4, 7, 6, 8, 9]))],
        # residuals within the vigor (1,2,5), dedication (3,4,7) and absorption (6,8,9) triads
        _pairs('Q12_engagement', [(1, 2), (1, 5), (2, 5), (3, 4), (3, 7), (4, 7),
                                  (6, 8), (6, 9), (8, 9)]),
        description='Work engagement (UWES), single factor',
    )
    burnout = define_scale(
        'Burnout',
        [define_factor('F1', items('Q13_burnout', [1, 2, 3, 7, 9, 15, 16, 18, 24])),
         define_factor('F2', items('Q13_burnout', [6, 11, 12, 17, 27])),
         define_factor('F3', items('Q13_burnout', [4, 8, 10, 13, 20, 21, 23, 25])),
         define_factor('F4', items('Q13_burnout', [5, 14, 19, 22, 26]))],
        description='Teacher burnout, four factors',
    )
    triq = define_scale(
        'TRIQ',
        [define_factor('F1', items('Q16_ruolopercepito', [10, 11, 12, 17, 18])),
         define_factor('F2', items('Q16_ruolopercepito', [1, 2, 4, 6, 7])),
         define_factor('F3', items('Q16_ruolopercepito', [5, 8, 15]))],
        description='Teacher role identity: promotion, pedagogical, traditional',
    )
    metattive = define_scale(
        'MetAttive',
        [define_factor('F1', items('Q19_metodolattive', [1, 2, 4, 5, 6, 7, 8])),
         define_factor('F2', items('Q19_metodolattive', [3, 9, 10, 11]))],
        description='Active methodologies: cooperative learning, metacognitive strategies',
    )
    selfeff = define_scale(
        'SelfEfficacy',
        [define_factor('F1', items('Q17_autoefficacia', range(1, 13)))],
        _pairs('Q17_autoefficacia', [(9, 11), (7, 8), (9, 10), (2, 10)]),
        description='Teacher self-efficacy, single factor',
    )

    registry = ScaleRegistry([engagement, burnout, triq, metattive, selfeff])
    steps = (
        ScaleStep(engagement, {'F1': 'Engagement_Factor'}),
        ScaleStep(burnout, {'F1': 'BurnoutEE', 'F2': 'Burnout_CY',
                            'F3': 'Burnout_RP', 'F4': 'Burnout_DEP'}),
        ScaleStep(triq, {'F1': 'TRIQ_Prom', 'F2': 'TRIQ_Ped', 'F3': 'TRIQ_Trad'}),
        ScaleStep(metattive, {'F1': 'CoopLea', 'F2': 'Metacognitive'}),
        ScaleStep(selfeff, {'F1': 'Teacher_Self_Efficacy'}, inspect_modifications=True),
    )
    return Study(
        name='teachers',
        description='HBSC 2022 teacher survey',
        registry=registry,
        steps=steps,
        numeric_prefixes=('Q12_engagement_', 'Q13_burnout_', 'Q16_ruolopercepito_',
                          'Q17_autoefficacia_', 'Q19_metodolattive_'),
        default_input='HBSC_2022_Insegnanti_Da_Usare_4.sav',
        default_output='HBSC_LPA_Factors.sav',
        score_position='append',
        modification_targets=('SelfEfficacy',),
    )


def uniben_study() -> Study:
    """University wellbeing survey: reverse-coded items, scores prepended."""
    ghq = define_scale(
        'GHQ',
        [define_factor('Fpsy_AD', items('Q6_funzionamento_psi', [2, 5, 6, 9], reverse=True)),
         define_factor('Fpsy_SD', items('Q6_funzionamento_psi', [1, 3, 4, 7, 8, 12],
                                        reverse=True)),
         define_factor('FpsyLC', items('Q6_funzionamento_psi', [10, 11], reverse=True))],
        description='General Health Questionnaire (GHQ-12)',
    )
    partecip = define_scale(
        'Partecip',
        [define_factor('Part_att', items('Q17_partecipazione', [1, 2, 6])),
         define_factor('Part_spazi', items('Q17_partecipazione', [3, 4]))],
        description='Participation: active attitudes, use of spaces',
    )
    ben = define_scale(
        'Ben',
        [define_factor('BenEM', items('Q5_benessere', range(1, 4), reverse=True)),
         define_factor('BenSO', items('Q5_benessere', range(4, 9), reverse=True)),
         define_factor('BenPSI', items('Q5_benessere', range(9, 15), reverse=True))],
        description='Wellbeing: emotional, social, psychological',
    )
    burnout = define_scale(
        'Burnout',
        [define_factor('Burn_EE', items('Q58_burnout', range(1, 6), reverse=True)),
         define_factor('Burn_Cyn', items('Q58_burnout', range(6, 10), reverse=True)),
         define_factor('Burn_Eff', items('Q58_burnout', range(10, 16), reverse=True))],
        description='Burnout: exhaustion, cynicism, professional efficacy',
    )
    # both cynicism items; very large MI for this pair on the base model
    burn_cor = derive_scale(burnout, [('Q58_burnout_8riv', 'Q58_burnout_9riv')],
                            name='Burn_cor')

    registry = ScaleRegistry([ghq, partecip, ben, burnout, burn_cor])
    steps = (
        ScaleStep(ghq),
        ScaleStep(partecip),
        ScaleStep(ben),
        ScaleStep(burn_cor),
    )
    return Study(
        name='uniben',
        description='University wellbeing survey',
        registry=registry,
        steps=steps,
        numeric_prefixes=('Q6_funzionamento_psi_', 'Q17_partecipazione_',
                          'Q5_benessere_', 'Q58_burnout_'),
        default_input='UniBen_factors.sav',
        default_output='UniBen_F23giugno.sav',
        score_position='prepend',
        modification_targets=('Burnout',),
    )


def predictors_study() -> Study:
    """Work conditions and organisational belonging as wellbeing predictors."""
    condiz = define_scale(
        'Condiz',
        [define_factor('SOVR_LAV', items('Q9_condizlav', [1, 6, 12, 19])),
         define_factor('SUPP_Dir', items('Q9_condizlav', [2, 13, 16])),
         define_factor('GroupTech', items('Q9_condizlav', [3, 7, 10])),
         define_factor('Parents', items('Q9_condizlav', [4, 5, 15])),
         define_factor('GestDisc', items('Q9_condizlav', [8, 11, 14]))],
        description='Work conditions: overload, supervisor support, team, parents, discipline',
    )
    appartenenza = define_scale(
        'Appartenenza',
        [define_factor('APP', items('Q11_appartenenzaorg', range(1, 7)))],
        _pairs('Q11_appartenenzaorg', [(3, 4), (1, 4), (2, 5)]),
        description='Organisational belonging, single factor',
    )

    registry = ScaleRegistry([condiz, appartenenza])
    steps = (
        ScaleStep(condiz),
        ScaleStep(appartenenza, inspect_modifications=True),
    )
    return Study(
        name='predictors',
        description='Work conditions and organisational belonging',
        registry=registry,
        steps=steps,
        numeric_prefixes=('Q9_condizlav_', 'Q11_appartenenzaorg_'),
        default_input='Predictors_Ben_1.sav',
        default_output='PredictorsBen_Factors.sav',
        score_position='prepend',
        modification_targets=('Appartenenza',),
    )


STUDIES: Dict[str, Callable[[], Study]] = {
    'teachers': teachers_study,
    'uniben': uniben_study,
    'predictors': predictors_study,
}


def get_study(name: str) -> Study:
    """Build the named study (raises ConfigurationError for unknown names)."""
    if name not in STUDIES:
        raise ConfigurationError(f"Unknown study '{name}'. Available: {list(STUDIES)}")
    return STUDIES[name]()


def list_studies() -> List[str]:
    return list(STUDIES)
