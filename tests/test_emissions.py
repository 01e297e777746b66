"""
Tests for the emissions calculation engine.
"""

import pytest
from datetime import datetime

from brrp.core.constants import GWP_MAX, GWP_MIN, METHANE_GWP, MFE_VARIANCE_TOLERANCE_PERCENT
from brrp.core.errors import DuplicateError, NotFoundError, ValidationError
from brrp.handlers.emissions import (
    calculate,
    calculate_co2_equivalent,
    calculate_daily_diversion,
    calculate_def,
    calculate_emissions,
    calculate_energy_produced,
    calculate_waste_diversion_reduction,
    estimate_methane_generation,
    get_emissions_for_measurement,
    get_emissions_record,
    validate_against_mfe,
    validate_against_standard,
)
from brrp.models.emissions import AccountingStandard
from brrp.models.measurement import Measurement


def make_measurement(**overrides) -> Measurement:
    values = dict(
        facility_id="BRRP-NELSON",
        timestamp=datetime(2025, 1, 15, 10, 0),
        waste_processed=10.0,
        methane_generated=2600.0,
        methane_destroyed=2485.0,
        electricity_produced=1200.0,
        process_heat_produced=None,
    )
    values.update(overrides)
    return Measurement(**values)


class TestCo2Equivalent:
    """Methane volume -> tonnes CO2eq."""

    def test_daily_reading(self):
        # 2485 m³ * 0.657 kg/m³ = 1632.645 kg = 1.632645 t, x 28 = 45.71406 t
        assert calculate_co2_equivalent(2485.0) == pytest.approx(45.714, abs=1e-9)

    def test_zero_methane(self):
        assert calculate_co2_equivalent(0.0) == 0.0

    def test_rounded_to_three_decimals(self):
        value = calculate_co2_equivalent(1234.567)
        assert value == round(value, 3)


class TestEnergyProduced:
    """Electricity first, process heat as fallback."""

    def test_electricity_preferred(self):
        assert calculate_energy_produced(1200.0, 3600.0) == 1200.0

    def test_heat_converted_from_mj(self):
        assert calculate_energy_produced(None, 360.0) == pytest.approx(100.0)

    def test_zero_electricity_falls_back_to_heat(self):
        assert calculate_energy_produced(0.0, 36.0) == pytest.approx(10.0)

    def test_nothing_reported(self):
        assert calculate_energy_produced(None, None) == 0.0


class TestDefaultEmissionFactor:

    def test_zero_energy_gives_zero(self):
        assert calculate_def(0.0, 2485.0) == 0.0

    def test_intensity_per_kwh(self):
        # 45.71406 t / 1200 kWh = 0.03809505
        assert calculate_def(1200.0, 2485.0) == pytest.approx(0.038095, abs=1e-6)

    def test_rounded_to_six_decimals(self):
        value = calculate_def(777.0, 1999.0)
        assert value == round(value, 6)


class TestCalculate:
    """Full measurement -> emissions record calculation."""

    def test_worked_example(self):
        record = calculate(make_measurement())

        assert record.methane_destroyed == 2485.0
        assert record.co2_equivalent == pytest.approx(45.714, abs=1e-9)
        assert record.global_warming_potential == METHANE_GWP
        assert record.energy_produced == 1200.0
        assert record.def_value == pytest.approx(0.038095, abs=1e-6)
        assert record.standard_used == AccountingStandard.ACM0022

    @pytest.mark.parametrize("destroyed", [0.0, 1.0, 250.5, 2485.0, 99999.9])
    def test_gross_reduction_equals_co2_equivalent(self, destroyed):
        record = calculate(make_measurement(methane_generated=100000.0, methane_destroyed=destroyed))
        assert record.gross_emissions_reduction == record.co2_equivalent

    @pytest.mark.parametrize("standard", list(AccountingStandard))
    def test_gwp_within_ar5_range(self, standard):
        record = calculate(make_measurement(), standard)
        assert GWP_MIN <= record.global_warming_potential <= GWP_MAX
        assert record.standard_used == standard

    def test_deterministic(self):
        measurement = make_measurement(electricity_produced=None, process_heat_produced=5400.0)
        first = calculate(measurement)
        second = calculate(measurement)

        fields = [
            "methane_destroyed", "co2_equivalent", "global_warming_potential",
            "energy_produced", "def_value", "gross_emissions_reduction", "standard_used",
        ]
        assert [getattr(first, f) for f in fields] == [getattr(second, f) for f in fields]

    def test_heat_only_measurement(self):
        record = calculate(make_measurement(electricity_produced=None, process_heat_produced=3600.0))
        assert record.energy_produced == pytest.approx(1000.0)

    def test_no_energy_gives_zero_def(self):
        record = calculate(make_measurement(electricity_produced=None))
        assert record.energy_produced == 0.0
        assert record.def_value == 0.0


class TestValidateAgainstStandard:
    """Advisory checks against the accounting methodologies."""

    def test_valid_record(self):
        result = validate_against_standard(calculate(make_measurement()), AccountingStandard.ACM0022)
        assert result.valid
        assert result.errors == []

    def test_acm0022_requires_methane_destruction(self):
        record = calculate(make_measurement(methane_destroyed=0.0))
        result = validate_against_standard(record, AccountingStandard.ACM0022)

        assert not result.valid
        assert "ACM0022 requires positive methane destruction" in result.errors
        assert "CO2 equivalent must be positive" in result.errors

    @pytest.mark.parametrize("standard", [AccountingStandard.AM0053, AccountingStandard.AMS_I_D])
    def test_energy_standards_require_energy(self, standard):
        record = calculate(make_measurement(electricity_produced=None), standard)
        result = validate_against_standard(record, standard)

        assert not result.valid
        assert len(result.errors) == 1

    def test_gwp_out_of_range(self):
        record = calculate(make_measurement())
        record.global_warming_potential = 40
        result = validate_against_standard(record, AccountingStandard.ACM0022)

        assert not result.valid
        assert any("GWP" in e for e in result.errors)

    def test_ger_mismatch(self):
        record = calculate(make_measurement())
        record.gross_emissions_reduction = record.co2_equivalent + 1.0
        result = validate_against_standard(record, AccountingStandard.ACM0022)

        assert "GER calculation mismatch" in result.errors


class TestWasteDiversion:
    """MFE waste diversion factors (E = Q x F)."""

    def test_sewage_sludge(self):
        assert calculate_waste_diversion_reduction(3.0, "SEWAGE_SLUDGE") == pytest.approx(0.36)

    def test_unknown_waste_type(self):
        with pytest.raises(ValidationError) as exc:
            calculate_waste_diversion_reduction(1.0, "PLASTIC")
        assert exc.value.errors[0]["field"] == "wasteType"

    def test_methane_estimate(self):
        assert estimate_methane_generation(3.0, "SEWAGE_SLUDGE") == 60.0
        assert estimate_methane_generation(2.0, "LANDFILL_ORGANIC") == 200.0

    def test_unknown_feedstock(self):
        with pytest.raises(ValidationError):
            estimate_methane_generation(1.0, "GRAPE_MARC")

    def test_demonstrator_daily_totals(self):
        result = calculate_daily_diversion()

        assert result["sewage_sludge_reduction"] == pytest.approx(0.36)
        assert result["green_waste_reduction"] == pytest.approx(1.26)
        assert result["grape_marc_reduction"] == 0.0
        assert result["total_reduction"] == pytest.approx(1.62)
        assert result["electricity_produced"] == 1200.0

    def test_grape_marc_included(self):
        result = calculate_daily_diversion(grape_marc_tonnes=5.0)
        assert result["grape_marc_reduction"] == pytest.approx(0.9)
        assert result["total_reduction"] == pytest.approx(2.52)


class TestPersistence:
    """Stored emissions records."""

    async def test_one_record_per_measurement(self, session, ingested):
        measurement, record = ingested

        stored = await get_emissions_for_measurement(session, measurement.id)
        assert stored.id == record.id
        assert stored.measurement_id == measurement.id

        with pytest.raises(DuplicateError):
            await calculate_emissions(session, measurement)

        assert measurement.facility_id == "BRRP-NELSON"

    async def test_get_missing_record(self, session):
        with pytest.raises(NotFoundError):
            await get_emissions_record(session, 9999)

    async def test_round_trip(self, session_factory, emissions_record):
        async with session_factory() as other:
            loaded = await get_emissions_record(other, emissions_record.id)

        assert loaded.co2_equivalent == emissions_record.co2_equivalent
        assert loaded.def_value == emissions_record.def_value
        assert loaded.standard_used == AccountingStandard.ACM0022
        assert loaded.calculated_at == emissions_record.calculated_at

    async def test_constraint_duplicate_keeps_caller_records(self, session, ingested, monkeypatch):
        measurement, record = ingested

        async def no_existing_record(session, measurement_id):
            return None

        # Lose the race: the insert itself hits the unique constraint
        monkeypatch.setattr("brrp.handlers.emissions.get_emissions_for_measurement", no_existing_record)

        with pytest.raises(DuplicateError):
            await calculate_emissions(session, measurement)

        assert measurement.facility_id == "BRRP-NELSON"
        assert record.co2_equivalent == pytest.approx(45.714)


class TestMFEComparison:
    """Calculated intensities against MFE default factors."""

    def test_within_tolerance(self):
        result = validate_against_mfe(0.5, "waste-to-energy")

        assert result.valid
        assert result.variance == pytest.approx(11.111, abs=1e-3)
        assert "within acceptable range" in result.message
        assert "0.45 kg CO2eq/kWh" in result.message

    def test_outside_tolerance(self):
        result = validate_against_mfe(0.2, "wastewater-treatment")

        assert not result.valid
        assert result.variance == pytest.approx(-42.857, abs=1e-3)
        assert "outside acceptable range" in result.message

    def test_below_default(self):
        result = validate_against_mfe(26.0, "landfill-methane")

        assert result.valid
        assert result.variance < 0

    def test_unknown_category(self):
        result = validate_against_mfe(1.0, "composting")

        assert not result.valid
        assert result.variance == 0.0
        assert result.message == "No MFE data available for category: composting"

    def test_demonstrator_def_in_kg_per_kwh(self):
        record = calculate(make_measurement())
        result = validate_against_mfe(record.def_value * 1000, "waste-to-energy")

        assert result.variance > MFE_VARIANCE_TOLERANCE_PERCENT
        assert not result.valid
