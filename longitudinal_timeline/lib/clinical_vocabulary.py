"""
Clinical Vocabulary Tables for the Longitudinal Engine

Static lookup tables that drive every rule-based classification in the engine:
  - Event titles for visit-history entry types and treatment types
  - Lab units, tumor-marker detection and per-test directionality
  - Imaging keyword sets (importance, comparison, trajectory) and body regions
  - Actionable gene allow-list with therapy classes
  - Adverse event severity keywords
  - Pairwise event relationship labels
  - Source-system reliability weights and milestone rationales

Keyword matching is negation-aware: "no new lesions" does not count as a
mention of "new".
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple


# ============================================================================
# VISIT HISTORY / TREATMENT TITLES
# ============================================================================

HISTORY_ENTRY_TITLES = {
    'symptom': 'Symptom Report',
    'diagnosis': 'Clinical Diagnosis',
    'admission': 'Hospital Admission',
    'discharge': 'Hospital Discharge',
    'follow_up': 'Follow-up Visit',
    'consultation': 'Consultation',
    'procedure': 'Procedure',
}

TREATMENT_TYPE_LABELS = {
    'chemotherapy': 'Chemotherapy',
    'radiation': 'Radiation Therapy',
    'surgery': 'Surgical Intervention',
    'immunotherapy': 'Immunotherapy',
    'targeted_therapy': 'Targeted Therapy',
    'hormone_therapy': 'Hormone Therapy',
}


def format_history_title(entry_type: Optional[str]) -> str:
    """Title for a visit-history entry, falling back to the title-cased type."""
    if not entry_type:
        return 'Clinical Encounter'
    key = entry_type.strip().lower().replace('-', '_').replace(' ', '_')
    return HISTORY_ENTRY_TITLES.get(key, key.replace('_', ' ').title())


def format_treatment_type(treatment_type: Optional[str]) -> str:
    if not treatment_type:
        return 'Treatment'
    key = treatment_type.strip().lower().replace('-', '_').replace(' ', '_')
    return TREATMENT_TYPE_LABELS.get(key, key.replace('_', ' ').title())


# ============================================================================
# LABORATORY
# ============================================================================

LAB_UNITS = {
    'rbc': 'million/μL',
    'wbc': 'thousand/μL',
    'platelets': 'thousand/μL',
    'hemoglobin': 'g/dL',
    'hematocrit': '%',
    'ca-125': 'U/mL',
    'ca 19-9': 'U/mL',
    'cea': 'ng/mL',
    'psa': 'ng/mL',
    'afp': 'ng/mL',
    'squamous cell carcinoma antigen': 'ng/mL',
    'albumin': 'g/dL',
    'creatinine': 'mg/dL',
    'ldh': 'U/L',
}

BLOOD_COUNT_TESTS = {'rbc', 'wbc', 'platelets', 'hemoglobin', 'hematocrit'}

TUMOR_MARKER_PATTERNS = [
    r"\bca[- ]?\d",
    r"antigen",
    r"\bcea\b",
    r"\bpsa\b",
    r"\bafp\b",
    r"\bhcg\b",
]

ABNORMAL_INTERPRETATION_KEYWORDS = [
    'high', 'low', 'elevated', 'decreased', 'abnormal', 'positive', 'critical'
]

HIGHER_IS_BETTER = 'higher_is_better'
LOWER_IS_BETTER = 'lower_is_better'

TEST_DIRECTIONALITY = {
    'hemoglobin': HIGHER_IS_BETTER,
    'hematocrit': HIGHER_IS_BETTER,
    'rbc': HIGHER_IS_BETTER,
    'platelets': HIGHER_IS_BETTER,
    'albumin': HIGHER_IS_BETTER,
    'neutrophils': HIGHER_IS_BETTER,
    'ldh': LOWER_IS_BETTER,
    'creatinine': LOWER_IS_BETTER,
    'bilirubin': LOWER_IS_BETTER,
    'alt': LOWER_IS_BETTER,
    'ast': LOWER_IS_BETTER,
}

BIOMARKER_INTERPRETATIONS = {
    'tumor_marker': {
        'improving': 'Falling tumor marker consistent with treatment response',
        'declining': 'Rising tumor marker, evaluate for disease progression',
    },
    'blood_count': {
        'improving': 'Recovery of blood counts',
        'declining': 'Falling blood counts, assess marrow reserve and treatment toxicity',
    },
}


def normalize_test_name(test_name: Optional[str]) -> str:
    return (test_name or '').strip().lower()


def is_tumor_marker(test_name: Optional[str]) -> bool:
    name = normalize_test_name(test_name)
    return any(re.search(pattern, name) for pattern in TUMOR_MARKER_PATTERNS)


def is_blood_count(test_name: Optional[str]) -> bool:
    return normalize_test_name(test_name) in BLOOD_COUNT_TESTS


def get_test_directionality(test_name: Optional[str]) -> Optional[str]:
    """
    Clinical directionality of a test.

    Returns:
        HIGHER_IS_BETTER, LOWER_IS_BETTER, or None when unknown
    """
    name = normalize_test_name(test_name)
    if name in TEST_DIRECTIONALITY:
        return TEST_DIRECTIONALITY[name]
    if is_tumor_marker(name):
        return LOWER_IS_BETTER
    return None


def default_lab_unit(test_name: Optional[str]) -> Optional[str]:
    return LAB_UNITS.get(normalize_test_name(test_name))


def classify_change(test_name: Optional[str], change_percent: float, threshold_percent: float) -> str:
    """
    Clinical direction of a percent change in a test value.

    Changes within the threshold are 'stable'. Beyond it, tests with a known
    directionality are 'improving'/'declining'; others are 'increasing'/'decreasing'.
    """
    if abs(change_percent) <= threshold_percent:
        return 'stable'
    rising = change_percent > 0
    directionality = get_test_directionality(test_name)
    if directionality == HIGHER_IS_BETTER:
        return 'improving' if rising else 'declining'
    if directionality == LOWER_IS_BETTER:
        return 'declining' if rising else 'improving'
    return 'increasing' if rising else 'decreasing'


# ============================================================================
# IMAGING
# ============================================================================

# Event importance
IMAGING_HIGH_IMPORTANCE_KEYWORDS = ['mass', 'tumor', 'metasta', 'progression', 'recurrence', 'new']
IMAGING_MEDIUM_IMPORTANCE_KEYWORDS = ['stable', 'unchanged', 'improvement', 'improved', 'reduction', 'resolved']

# Paired study comparison
COMPARISON_PROGRESSION_KEYWORDS = ['progression', 'increase', 'enlargement', 'new', 'worsening']
COMPARISON_IMPROVEMENT_KEYWORDS = ['improvement', 'reduction', 'decrease', 'resolution', 'response']
COMPARISON_STABLE_KEYWORDS = ['stable', 'unchanged', 'similar', 'no change']

# Overall trajectory markers
TRAJECTORY_PROGRESSION_KEYWORDS = ['progression', 'increase', 'new', 'metasta']
TRAJECTORY_RESPONSE_KEYWORDS = ['improvement', 'reduction', 'response', 'stable']

BODY_REGION_KEYWORDS = [
    ('head', ['head', 'brain', 'skull', 'cranial', 'intracranial']),
    ('neck', ['neck', 'thyroid', 'cervical spine', 'larynx']),
    ('chest', ['chest', 'thorax', 'thoracic', 'lung', 'pulmonary', 'breast', 'mediastin']),
    ('abdomen', ['abdomen', 'abdominal', 'liver', 'hepatic', 'pancrea', 'kidney', 'renal']),
    ('pelvis', ['pelvis', 'pelvic', 'bladder', 'prostate', 'uterus', 'ovar', 'cervix']),
    ('extremities', ['extremit', 'arm', 'leg', 'femur', 'hand', 'foot']),
]


def classify_body_region(text: Optional[str]) -> str:
    """Coarse body region from free text; 'unspecified' when nothing matches."""
    if not text:
        return 'unspecified'
    text_lower = text.lower()
    for region, keywords in BODY_REGION_KEYWORDS:
        if any(re.search(r"\b" + re.escape(keyword), text_lower) for keyword in keywords):
            return region
    return 'unspecified'


# ============================================================================
# STAGING
# ============================================================================

# Roman stage group with optional substage ("IIIA", "IVB", "IA1"), standing alone as a token
STAGE_GROUP_PATTERN = re.compile(r"(?<![A-Za-z])(IV|III|II|I)(?:[A-C]\d?)?(?![A-Za-z])", re.IGNORECASE)
STAGE_PREFIX_PATTERN = re.compile(r"^\s*stage\s*", re.IGNORECASE)
STAGE_GROUP_PRECEDENCE = ['IV', 'III', 'II', 'I']


def stage_group(stage: Optional[str]) -> Optional[str]:
    """
    Roman stage group named in free-text stage, highest group first.

    "Stage IIIB invasive" -> 'III', "IIA node positive" -> 'II'. Letters inside
    ordinary words ("positive", "extensive") are not stage tokens.
    """
    if not stage:
        return None
    text = STAGE_PREFIX_PATTERN.sub('', str(stage))
    groups = {match.group(1).upper() for match in STAGE_GROUP_PATTERN.finditer(text)}
    for group in STAGE_GROUP_PRECEDENCE:
        if group in groups:
            return group
    return None


# ============================================================================
# GENOMICS
# ============================================================================

ACTIONABLE_GENES = {
    'EGFR': ('EGFR tyrosine kinase inhibitor', ['Osimertinib', 'Erlotinib', 'Gefitinib']),
    'ALK': ('ALK inhibitor', ['Alectinib', 'Crizotinib', 'Brigatinib']),
    'ROS1': ('ROS1 inhibitor', ['Crizotinib', 'Entrectinib']),
    'BRAF': ('BRAF/MEK inhibitor', ['Dabrafenib + Trametinib']),
    'HER2': ('HER2-directed therapy', ['Trastuzumab', 'Pertuzumab']),
    'MET': ('MET inhibitor', ['Capmatinib', 'Tepotinib']),
    'RET': ('RET inhibitor', ['Selpercatinib', 'Pralsetinib']),
    'NTRK': ('TRK inhibitor', ['Larotrectinib', 'Entrectinib']),
    'BRCA1': ('PARP inhibitor', ['PARP inhibitors', 'Platinum-based therapy']),
    'BRCA2': ('PARP inhibitor', ['PARP inhibitors', 'Platinum-based therapy']),
}

GENE_ALIASES = {
    'ERBB2': 'HER2',
    'NTRK1': 'NTRK',
    'NTRK2': 'NTRK',
    'NTRK3': 'NTRK',
}


def actionable_gene_key(gene: Optional[str]) -> Optional[str]:
    """Allow-list key for a gene symbol, or None if not actionable."""
    if not gene:
        return None
    symbol = gene.strip().upper()
    symbol = GENE_ALIASES.get(symbol, symbol)
    return symbol if symbol in ACTIONABLE_GENES else None


# ============================================================================
# TREATMENT SAFETY
# ============================================================================

SEVERE_ADVERSE_EVENT_KEYWORDS = [
    'neutropenia', 'thrombocytopenia', 'anemia', 'neuropathy', 'sepsis',
    'grade 3', 'grade 4', 'grade iii', 'grade iv'
]
MODERATE_ADVERSE_EVENT_KEYWORDS = ['nausea', 'fatigue', 'diarrhea', 'rash', 'grade 2', 'grade ii']


def classify_adverse_event_severity(description: Optional[str]) -> str:
    """severe / moderate / mild by keyword allow-list."""
    text = (description or '').lower()
    if any(keyword in text for keyword in SEVERE_ADVERSE_EVENT_KEYWORDS):
        return 'severe'
    if any(keyword in text for keyword in MODERATE_ADVERSE_EVENT_KEYWORDS):
        return 'moderate'
    return 'mild'


# ============================================================================
# EVENT RELATIONSHIPS / MILESTONES / SOURCES
# ============================================================================

DEFAULT_RELATIONSHIP = 'temporal-proximity'

RELATIONSHIP_TABLE: Dict[Tuple[str, str], str] = {
    ('lab-result', 'treatment-start'): 'pre-treatment-assessment',
    ('imaging', 'treatment-start'): 'staging',
    ('pathology-collection', 'treatment-start'): 'diagnostic-confirmation',
    ('pathology-report', 'treatment-start'): 'diagnostic-confirmation',
    ('treatment-start', 'adverse-event'): 'treatment-toxicity',
    ('imaging', 'treatment-end'): 'response-assessment',
    ('pathology-collection', 'pathology-report'): 'specimen-processing',
    ('genomics', 'treatment-start'): 'biomarker-guided-selection',
    ('diagnosis', 'pathology-report'): 'diagnostic-confirmation',
}

MILESTONE_RATIONALE = {
    'diagnosis': 'Initial cancer diagnosis establishes treatment pathway',
    'treatment-start': 'Treatment initiation represents major clinical decision',
    'genomics': 'Genomic profiling enables precision medicine approach',
    'trial-enrollment': 'Clinical trial enrollment provides access to novel therapies',
}

SOURCE_RELIABILITY = {
    'EMR': 0.9,
    'PACS': 0.95,
    'LIS': 0.85,
    'PATHOLOGY': 0.9,
    'GENOMICS': 0.8,
}
DEFAULT_SOURCE_RELIABILITY = 0.5

EXPECTED_SOURCE_SYSTEMS = ['EMR', 'PACS', 'LIS', 'PATHOLOGY', 'GENOMICS']


# ============================================================================
# NEGATION-AWARE KEYWORD MATCHING
# ============================================================================

NEGATION_PATTERNS = [
    r"^no$",
    r"^not$",
    r"^without$",
    r"^negative$",
    r"^free$",
]

CLAUSE_BREAKS = {'.', ';', ',', ':', 'but', 'however'}


def find_keywords(text: Optional[str], keywords: Iterable[str], negation_aware: bool = True,
                  window: int = 4) -> List[str]:
    """
    Keywords mentioned in text, in keyword order.

    A keyword matches a token that starts with it ("metasta" matches
    "metastatic"); multi-word keywords match consecutive tokens. With
    negation_aware, a mention preceded within the same clause by a negation
    cue ("no", "without", ...) is ignored.
    """
    if not text:
        return []
    tokens = re.findall(r"\w+|\S", text.lower())
    found = []
    for keyword in keywords:
        keyword_tokens = keyword.lower().split()
        if not keyword_tokens:
            continue
        for idx in _mention_positions(tokens, keyword_tokens):
            if negation_aware and _is_negated(tokens, idx, window):
                continue
            found.append(keyword)
            break
    return found


def mentions_any(text: Optional[str], keywords: Iterable[str], negation_aware: bool = True) -> bool:
    return bool(find_keywords(text, keywords, negation_aware=negation_aware))


def _mention_positions(tokens: List[str], keyword_tokens: List[str]) -> List[int]:
    positions = []
    span = len(keyword_tokens)
    for idx in range(len(tokens) - span + 1):
        if all(tokens[idx + k].startswith(keyword_tokens[k]) for k in range(span)):
            positions.append(idx)
    return positions


def _is_negated(tokens: List[str], idx: int, window: int) -> bool:
    for back in range(1, window + 1):
        pos = idx - back
        if pos < 0 or tokens[pos] in CLAUSE_BREAKS:
            return False
        if any(re.search(pattern, tokens[pos]) for pattern in NEGATION_PATTERNS):
            return True
    return False
