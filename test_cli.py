"""Smoke tests for the explore and ingest command line tools."""

import json

import pandas as pd
import pytest

import explore
import ingest


@pytest.fixture
def data_dir(tmp_path):
    vehicles = [
        {"id": "veh-1", "capCode": "TOYA1", "manufacturer": "Acme", "model": "Roadster",
         "variant": "1.5 Sport", "basicListPrice": 2500000},
        {"id": "veh-2", "manufacturer": "Acme", "model": "Van"},
    ]
    ratebook = [
        {"vehicleId": "veh-1", "providerCode": "providera", "term": 36, "annualMileage": 10000,
         "paymentPlan": "spread_3_down", "totalRental": 39900, "contractType": "CHNM"},
        {"vehicleId": "veh-1", "providerCode": "providerb", "term": 36, "annualMileage": 10000,
         "paymentPlan": "spread_6_down", "totalRental": 39000, "contractType": "CHNM"},
        {"vehicleId": "veh-1", "providerCode": "providerb", "term": 48, "annualMileage": 10000,
         "paymentPlan": "spread_6_down", "totalRental": 36000, "contractType": "CHNM"},
    ]
    (tmp_path / "vehicles.json").write_text(json.dumps(vehicles))
    (tmp_path / "ratebook.json").write_text(json.dumps(ratebook))
    return tmp_path


def test_price_json(data_dir, capsys):
    assert explore.main(["--data-dir", str(data_dir), "price", "toya1", "--json"]) == 0
    response = json.loads(capsys.readouterr().out)
    assert response["vehicleId"] == "veh-1"
    assert response["finalPrice"] == 36000
    assert response["rates"]["overallBestKey"] == "48-6"
    assert response["marketPosition"]["position"] == "only"


def test_price_report_and_csv(data_dir, capsys):
    csv_path = data_dir / "matrix.csv"
    assert explore.main(["--data-dir", str(data_dir), "price", "veh-1", "--csv", str(csv_path)]) == 0
    out = capsys.readouterr().out
    assert "Acme Roadster 1.5 Sport" in out
    assert "£421.17~" in out
    assert csv_path.exists()


def test_price_without_rates(data_dir, capsys):
    assert explore.main(["--data-dir", str(data_dir), "price", "veh-2"]) == 0
    assert "No rates available" in capsys.readouterr().out


def test_unknown_vehicle(data_dir, capsys):
    assert explore.main(["--data-dir", str(data_dir), "price", "nope"]) == 1


def test_terms(data_dir, capsys):
    assert explore.main(["--data-dir", str(data_dir), "terms", "veh-1", "--initial", "6"]) == 0
    out = capsys.readouterr().out
    assert "Best term:" in out


def test_override_lifecycle(data_dir, capsys):
    base = ["--data-dir", str(data_dir)]
    assert explore.main(base + ["overrides", "add", "--cap-code", "TOYA1",
                                "--type", "absolute", "--value", "-5", "--reason", "promo"]) == 0
    capsys.readouterr()

    assert explore.main(base + ["overrides", "list"]) == 0
    listed = json.loads(capsys.readouterr().out)
    assert len(listed) == 1
    assert listed[0]["overrideValueGbp"] == -5
    override_id = listed[0]["id"]

    assert explore.main(base + ["price", "veh-1", "--json"]) == 0
    response = json.loads(capsys.readouterr().out)
    assert response["finalPrice"] == 35500
    assert response["appliedOverrideId"] == override_id

    # Update values are pounds too
    assert explore.main(base + ["overrides", "update", "--id", override_id, "--value", "-10"]) == 0
    capsys.readouterr()
    assert explore.main(base + ["price", "veh-1", "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["finalPrice"] == 35000

    assert explore.main(base + ["overrides", "delete", "--id", override_id]) == 0
    assert explore.main(base + ["overrides", "delete", "--id", override_id]) == 1


def test_invalid_override_is_reported(data_dir, capsys):
    assert explore.main(["--data-dir", str(data_dir), "overrides", "add",
                         "--type", "fixed", "--value", "-1"]) == 1
    assert "Invalid override" in capsys.readouterr().out


def test_scan_csv(data_dir, capsys):
    csv_path = data_dir / "scan.csv"
    assert explore.main(["--data-dir", str(data_dir), "scan", "--csv", str(csv_path)]) == 0
    df = pd.read_csv(csv_path)
    assert list(df["vehicle_id"]) == ["veh-1", "veh-2"]
    assert df.loc[0, "final_price"] == 36000


def test_ingest_status_without_snapshots(data_dir, capsys):
    assert ingest.main(["status", "--data-dir", str(data_dir)]) == 0
    assert "No snapshots stored yet." in capsys.readouterr().out
