from types import MappingProxyType

DOSE_RANGE = (60.0, 220.0)

_EVIDENCE = MappingProxyType(
    {
        "Testosterone": (
            {
                "citation": "Bhasin et al., 2001",
                "study_type": "Randomized dose-response trial",
                "relevance": "Serum testosterone rose with dose in controlled settings.",
                "quality": "high",
            },
        ),
        "Free Testosterone": (
            {
                "citation": "TRT kinetics review",
                "study_type": "Meta-analysis",
                "relevance": "Free testosterone typically increases with androgen exposure.",
                "quality": "medium",
            },
        ),
        "Estradiol": (
            {
                "citation": "Aromatization studies in TRT",
                "study_type": "Observational + mechanistic",
                "relevance": "Estradiol often trends with testosterone exposure.",
                "quality": "medium",
            },
        ),
        "Hematocrit": (
            {
                "citation": "TRT erythrocytosis cohorts",
                "study_type": "Observational cohorts",
                "relevance": "Higher androgen exposure can increase hematocrit in susceptible users.",
                "quality": "medium",
            },
        ),
        "Apolipoprotein B": (
            {
                "citation": "Androgen-lipoprotein reviews",
                "study_type": "Systematic review",
                "relevance": "ApoB may increase on some androgen protocols.",
                "quality": "medium",
            },
        ),
        "LDL Cholesterol": (
            {
                "citation": "Androgen lipid cohorts",
                "study_type": "Observational cohorts",
                "relevance": "LDL response is heterogeneous but can be dose-related.",
                "quality": "medium",
            },
        ),
    }
)

# (marker, unit system) -> (unit, slope per mg/week, sigma)
_PRIOR_TABLE = {
    ("Testosterone", "eu"): ("nmol/L", 0.1, 4.2),
    ("Testosterone", "us"): ("ng/dL", 2.9, 120.0),
    ("Free Testosterone", "eu"): ("nmol/L", 0.0012, 0.08),
    ("Free Testosterone", "us"): ("pg/mL", 0.36, 18.0),
    ("Estradiol", "eu"): ("pmol/L", 0.95, 35.0),
    ("Estradiol", "us"): ("pg/mL", 0.26, 10.0),
    ("Hematocrit", "eu"): ("%", 0.015, 1.3),
    ("Hematocrit", "us"): ("%", 0.015, 1.3),
    ("Apolipoprotein B", "eu"): ("mg/dL", 0.014, 11.0),
    ("Apolipoprotein B", "us"): ("mg/dL", 0.014, 11.0),
    ("LDL Cholesterol", "eu"): ("mmol/L", 0.0005, 0.2),
    ("LDL Cholesterol", "us"): ("mg/dL", 0.02, 8.0),
}

DOSE_PRIORS = MappingProxyType(
    {
        key: MappingProxyType(
            {
                "marker": key[0],
                "unit_system": key[1],
                "unit": unit,
                "slope_per_mg": slope,
                "sigma": sigma,
                "dose_range_min": DOSE_RANGE[0],
                "dose_range_max": DOSE_RANGE[1],
                "evidence": _EVIDENCE[key[0]],
            }
        )
        for key, (unit, slope, sigma) in _PRIOR_TABLE.items()
    }
)


def lookup_dose_prior(marker: str, unit_system: str):
    return DOSE_PRIORS.get((marker, unit_system))


def list_dose_priors(unit_system: str, markers=None) -> list:
    wanted = set(markers or [])
    return [
        prior for (marker, system), prior in DOSE_PRIORS.items()
        if system == unit_system and (not wanted or marker in wanted)
    ]
