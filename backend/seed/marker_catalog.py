from types import MappingProxyType


BIOMARKERS = (
    {
        "name": "Testosterone",
        "category": "Hormones",
        "eu_unit": "nmol/L",
        "us_unit": "ng/dL",
        "aliases": (
            "testosterone",
            "total testosterone",
            "testosteron",
            "testosterone total",
            "testosteron totaal",
            "totale testosteron",
            "totaal testosteron",
        ),
    },
    {
        "name": "Free Testosterone",
        "category": "Hormones",
        "eu_unit": "nmol/L",
        "us_unit": "pg/mL",
        "aliases": (
            "free testosterone",
            "vrij testosteron",
            "vrije testosteron",
            "testosterone free",
            "testosteron vrij",
            "testosteron, vrij",
            "testosterone, free",
            "free test",
            "free t",
            "testosterone free calculated",
        ),
    },
    {"name": "Bioavailable Testosterone", "category": "Hormones", "eu_unit": "nmol/L", "us_unit": "ng/dL", "aliases": ("bioavailable testosterone",)},
    {
        "name": "Estradiol",
        "category": "Hormones",
        "eu_unit": "pmol/L",
        "us_unit": "pg/mL",
        "aliases": ("estradiol", "e2", "oestradiol", "oestrodiol"),
    },
    {
        "name": "SHBG",
        "category": "Hormones",
        "eu_unit": "nmol/L",
        "us_unit": "nmol/L",
        "aliases": ("shbg", "sex hormone binding globulin", "sex horm bind gl", "sex horm bind glob"),
    },
    {
        "name": "Dihydrotestosteron (DHT)",
        "category": "Hormones",
        "eu_unit": "nmol/L",
        "us_unit": "nmol/L",
        "aliases": (
            "dihydrotestosteron",
            "dihydrotestosterone",
            "dihydrotestosteron (dht)",
            "dihydrotestosterone (dht)",
            "dht",
        ),
    },
    {
        "name": "PSA",
        "category": "Prostate",
        "eu_unit": "ug/L",
        "us_unit": "ng/mL",
        "aliases": ("psa", "prostaat specifiek antigeen", "prostaatspecifiek ag", "prostaatspecifiek ag psa"),
    },
    {
        "name": "Hematocrit",
        "category": "Hematology",
        "eu_unit": "%",
        "us_unit": "%",
        "aliases": ("hematocrit", "hematokriet", "hematocriet", "hct"),
    },
    {
        "name": "Hemoglobin",
        "category": "Hematology",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("hemoglobin", "hemoglobine", "hemoglobine hb", "hb"),
    },
    {
        "name": "Red Blood Cells",
        "category": "Hematology",
        "eu_unit": "10^12/L",
        "us_unit": "10^12/L",
        "aliases": ("red blood cells", "red blood cell", "erythrocyten", "erytrocyten", "rbc"),
    },
    {"name": "MCV", "category": "Hematology", "eu_unit": "fL", "us_unit": "fL", "aliases": ("mcv", "m.c.v.", "m c v")},
    {
        "name": "MCH",
        "category": "Hematology",
        "eu_unit": "fmol",
        "us_unit": "fmol",
        "aliases": ("mch", "mean corpuscular hemoglobin"),
    },
    {
        "name": "MCHC",
        "category": "Hematology",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("mchc", "mean corpuscular hemoglobin concentration"),
    },
    {
        "name": "RDW-CV",
        "category": "Hematology",
        "eu_unit": "%",
        "us_unit": "%",
        "aliases": ("rdw-cv", "rdw cv", "rdw", "red cell distribution width", "erythrocyte distribution width"),
    },
    {
        "name": "Platelets",
        "category": "Hematology",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("platelets", "platelet", "thrombocytes", "thrombocyten", "trombocyten", "bloedplaatjes"),
    },
    {
        "name": "Leukocyten",
        "category": "Hematology",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("leukocyten", "leucocyten", "leukocytes", "leucocytes", "white blood cells", "wbc"),
    },
    {
        "name": "Neutrophils Abs.",
        "category": "Differential Count",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("neutrophils abs", "neutrophils abs.", "neutrofielen abs", "neutrofielen abs.", "absolute neutrophils"),
    },
    {
        "name": "Lymphocytes Abs.",
        "category": "Differential Count",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("lymphocytes abs", "lymphocytes abs.", "lymfocyten abs", "lymfocyten abs.", "absolute lymphocytes"),
    },
    {
        "name": "Monocytes Abs.",
        "category": "Differential Count",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("monocytes abs", "monocytes abs.", "monocyten abs", "monocyten abs.", "absolute monocytes"),
    },
    {
        "name": "Eosinophils Abs.",
        "category": "Differential Count",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("eosinophils abs", "eosinophils abs.", "eosinofielen abs", "eosinofielen abs.", "absolute eosinophils"),
    },
    {
        "name": "Basophils Abs.",
        "category": "Differential Count",
        "eu_unit": "10^9/L",
        "us_unit": "10^9/L",
        "aliases": ("basophils abs", "basophils abs.", "basofylen abs", "basofielen abs", "absolute basophils"),
    },
    {
        "name": "Cholesterol",
        "category": "Lipids",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("cholesterol", "cholesterol totaal", "total cholesterol", "cholesterol total"),
    },
    {
        "name": "HDL Cholesterol",
        "category": "Lipids",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("hdl cholesterol", "hdl-cholesterol", "hdlcholesterol", "cholesterol hdl"),
    },
    {
        "name": "LDL Cholesterol",
        "category": "Lipids",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": (
            "ldl cholesterol",
            "ldl-cholesterol",
            "ldlcholesterol",
            "cholesterol ldl",
            "ldl cholesterol direct",
            "ldl-cholesterol direct",
        ),
    },
    {
        "name": "Non-HDL Cholesterol",
        "category": "Lipids",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("non hdl cholesterol", "non-hdl cholesterol", "non-hdl-cholesterol", "non hdl"),
    },
    {
        "name": "Cholesterol/HDL Ratio",
        "category": "Lipids",
        "eu_unit": "ratio",
        "us_unit": "ratio",
        "aliases": (
            "cholesterol/hdl-cholesterol ratio",
            "cholesterol/hdl cholesterol ratio",
            "cholesterol/hdl ratio",
            "cholesterol hdl ratio",
        ),
    },
    {
        "name": "LDL/HDL Ratio",
        "category": "Lipids",
        "eu_unit": "ratio",
        "us_unit": "ratio",
        "aliases": ("ldl/hdl ratio", "ldl hdl ratio", "ldl/hdl-cholesterol ratio", "ldl hdl cholesterol ratio"),
    },
    {
        "name": "Triglyceriden",
        "category": "Lipids",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("triglyceriden", "triglycerides", "hoog risico triglyceriden", "high risk triglycerides"),
    },
    {
        "name": "Apolipoprotein B",
        "category": "Lipids",
        "eu_unit": "mg/dL",
        "us_unit": "mg/dL",
        "aliases": ("apolipoprotein b", "apolipoproteine b", "apo b", "apo-b", "apo b100", "apob", "apo-b100"),
    },
    {
        "name": "Glucose Nuchter",
        "category": "Metabolic",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": (
            "glucose nuchter",
            "glucose nuchter veneus lab",
            "glucose nuchter veneus",
            "glucose plasma",
            "glucose plasma lab",
            "glucose (plasma)",
            "glucose fasting",
            "fasting glucose",
        ),
    },
    {
        "name": "Insuline",
        "category": "Metabolic",
        "eu_unit": "mU/L",
        "us_unit": "uIU/mL",
        "aliases": ("insuline", "insulin", "fasting insulin", "insuline nuchter", "insulin fasting"),
    },
    {"name": "HOMA-IR", "category": "Metabolic", "eu_unit": "index", "us_unit": "index", "aliases": ("homa-ir", "homa ir", "homa")},
    {
        "name": "Albumine",
        "category": "Metabolic",
        "eu_unit": "g/L",
        "us_unit": "g/L",
        "aliases": ("albumine", "albumin", "serum albumin"),
    },
    {
        "name": "Creatinine",
        "category": "Kidney Function",
        "eu_unit": "umol/L",
        "us_unit": "umol/L",
        "aliases": ("creatinine", "creatinine serum", "serum creatinine", "kreatinine", "creatinine bloed"),
    },
    {
        "name": "eGFR",
        "category": "Kidney Function",
        "eu_unit": "mL/min/1.73m2",
        "us_unit": "mL/min/1.73m2",
        "aliases": ("egfr", "e g f r", "ckd-epi", "ckd epi", "ckd-epi egfr", "ckd-epi, egfr"),
    },
    {"name": "Ureum", "category": "Kidney Function", "eu_unit": "mmol/L", "us_unit": "mmol/L", "aliases": ("ureum", "urea")},
    {
        "name": "Albumine Urine",
        "category": "Urine",
        "eu_unit": "mg/L",
        "us_unit": "mg/L",
        "aliases": ("albumine urine", "albumine urine portie", "urine albumine"),
    },
    {
        "name": "Urine ACR",
        "category": "Urine",
        "eu_unit": "mg/mmol",
        "us_unit": "mg/mmol",
        "aliases": (
            "albumine creatinine ratio urine acr",
            "albumine/creatinine ratio urine acr",
            "acr urine",
            "urine acr",
            "albumine creatinine ratio urine",
        ),
    },
    {
        "name": "Creatinine Urine",
        "category": "Urine",
        "eu_unit": "mmol/L",
        "us_unit": "mmol/L",
        "aliases": ("creatinine urine", "creatinine urine portie", "urine creatinine"),
    },
    {
        "name": "TSH",
        "category": "Thyroid",
        "eu_unit": "mIU/L",
        "us_unit": "mIU/L",
        "aliases": ("tsh", "thyrotropin", "thyroid stimulating hormone", "thyroid stimulerend hormoon"),
    },
    {
        "name": "Free T4",
        "category": "Thyroid",
        "eu_unit": "pmol/L",
        "us_unit": "pmol/L",
        "aliases": ("free t4", "ft4", "vrij t4", "vrije t4", "vrije thyroxine"),
    },
    {
        "name": "Free T3",
        "category": "Thyroid",
        "eu_unit": "pmol/L",
        "us_unit": "pmol/L",
        "aliases": ("free t3", "ft3", "vrij t3", "vrije t3", "vrije trijodothyronine"),
    },
    {
        "name": "CRP",
        "category": "Inflammation",
        "eu_unit": "mg/L",
        "us_unit": "mg/L",
        "aliases": ("crp", "c-reactive protein", "c reactive protein", "c-reactief proteine", "c reactief proteine"),
    },
    {"name": "Homocysteine", "category": "Inflammation", "eu_unit": "umol/L", "us_unit": "umol/L", "aliases": ("homocysteine",)},
    {
        "name": "Ferritine",
        "category": "Iron Studies",
        "eu_unit": "ug/L",
        "us_unit": "ng/mL",
        "aliases": ("ferritine", "ferritin", "serum ferritin", "ferritina"),
    },
    {"name": "Transferrine", "category": "Iron Studies", "eu_unit": "g/L", "us_unit": "g/L", "aliases": ("transferrine", "transferrin")},
    {
        "name": "Transferrine Saturatie",
        "category": "Iron Studies",
        "eu_unit": "%",
        "us_unit": "%",
        "aliases": ("transferrine saturatie", "transferrin saturation", "transferrin saturatie"),
    },
    {
        "name": "Vitamin D (D3+D2) OH",
        "category": "Vitamins",
        "eu_unit": "nmol/L",
        "us_unit": "nmol/L",
        "aliases": (
            "oh vitamin d d3 d2",
            "vitamin d d3 d2 oh",
            "25 oh vitamin d d3 d2",
            "25-oh vitamin d d3 d2",
            "25 oh vitamin d",
            "25-oh vitamin d",
            "vitamin d d3 d2",
        ),
    },
    {
        "name": "Vitamine B12",
        "category": "Vitamins",
        "eu_unit": "pmol/L",
        "us_unit": "pmol/L",
        "aliases": ("vitamine b12", "vitamin b12", "vit b12", "b12", "cobalamin", "cobalamine"),
    },
    {"name": "Foliumzuur", "category": "Vitamins", "eu_unit": "nmol/L", "us_unit": "nmol/L", "aliases": ("foliumzuur", "folate", "folic acid")},
    {
        "name": "Free Androgen Index",
        "category": "Calculated",
        "eu_unit": "%",
        "us_unit": "%",
        "aliases": ("free androgen index", "fai", "vrije androgeen index"),
    },
    {
        "name": "T/E2 Ratio",
        "category": "Calculated",
        "eu_unit": "ratio",
        "us_unit": "ratio",
        "aliases": (
            "t/e2 ratio",
            "t e2 ratio",
            "testosterone e2 ratio",
            "testosteron e2 ratio",
            "testosterone/estradiol ratio",
            "testosteron/estradiol ratio",
        ),
    },
)

# Canonical name -> aliases. Read-only view built once at import.
MARKER_ALIASES = MappingProxyType({item["name"]: tuple(item["aliases"]) for item in BIOMARKERS})
MARKER_CATEGORIES = MappingProxyType({item["name"]: item["category"] for item in BIOMARKERS})

CORE_STABILITY_MARKERS = ("Testosterone", "Estradiol", "Hematocrit", "SHBG")
PRIMARY_MARKERS = ("Testosterone", "Free Testosterone", "Estradiol", "Hematocrit", "SHBG")


def marker_category(canonical_marker: str) -> str:
    return MARKER_CATEGORIES.get(canonical_marker, "Other")
