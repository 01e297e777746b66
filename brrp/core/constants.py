"""
Emissions accounting constants.

Fixed for the lifetime of the system so that every emissions record can be
reproduced from its measurement. Do not make these configurable.
"""

# Methane density at standard conditions (kg/m³)
METHANE_DENSITY_KG_PER_M3 = 0.657

# Methane GWP, IPCC AR5, 100-year horizon
METHANE_GWP = 28

# Accepted GWP range for methane (IPCC AR5)
GWP_MIN = 28
GWP_MAX = 36

# Process heat conversion: 1 kWh = 3.6 MJ
MJ_PER_KWH = 3.6

# Rounding applied to calculated values
CO2_DECIMALS = 3
DEF_DECIMALS = 6

# Tolerance used when checking GER == CO2eq
GER_TOLERANCE = 0.001

# Re-verification interval (bi-annual)
VERIFICATION_INTERVAL_MONTHS = 6

# MFE Measuring Emissions Guidance (August 2022), Table 34
# Units: tonnes CO2eq per tonne of waste diverted
MFE_EMISSION_FACTORS = {
    "FOOD_WASTE": 0.64,
    "GARDEN_WASTE": 0.18,
    "SEWAGE_SLUDGE": 0.12,
    "GRAPE_MARC": 0.18,  # assumed equal to garden waste until lab tested
    "ANAEROBIC_DIGESTION": 0.05,
}

# Typical methane yields (m³ per tonne of feedstock)
METHANE_YIELDS_M3_PER_TONNE = {
    "SEWAGE_SLUDGE": 20,
    "LANDFILL_ORGANIC": 100,
}

# Nelson tech demonstrator daily feedstock (tonnes/day)
DEMONSTRATOR_SEWAGE_SLUDGE_DAILY = 3.0
DEMONSTRATOR_GREEN_WASTE_DAILY = 7.0
DEMONSTRATOR_ELECTRICITY_SURPLUS_KWH = 1200.0

# MFE default emission factors used to sanity-check calculated intensities
# category -> (factor, unit)
MFE_DEFAULT_EMISSION_FACTORS = {
    "waste-to-energy": (0.45, "kg CO2eq/kWh"),
    "landfill-methane": (28, "kg CO2eq/kg CH4"),
    "wastewater-treatment": (0.35, "kg CO2eq/kWh"),
}
MFE_VARIANCE_TOLERANCE_PERCENT = 15.0

# Wastewater treatment plant reference data (inspection within the last year)
WWTP_STANDARDS = {
    "auckland-wwtp": {
        "plant_name": "Auckland Wastewater Treatment Plant",
        "standards": ["ISO 14001", "ISO 50001", "NZ Water & Waste"],
        "last_inspection": "2024-01-15",
    },
    "wellington-wwtp": {
        "plant_name": "Wellington Wastewater Treatment Plant",
        "standards": ["ISO 14001", "NZ Water & Waste"],
        "last_inspection": "2024-01-10",
    },
}
WWTP_INSPECTION_INTERVAL_MONTHS = 12
