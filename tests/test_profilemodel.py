import json

import pytest

from pumpsim.profilemodel import Profile, ProfileError, ProfileModel


def _recorder(model, event):
    calls = []
    model.connect(event, lambda *args: calls.append(args))
    return calls


def test_default_profiles():
    model = ProfileModel()
    names = [p.name for p in model.all_profiles()]
    assert names == sorted(["Default", "Sleep", "Exercise"])
    sleep = model.get_profile("Sleep")
    assert sleep == Profile("Sleep", 0.8, 10.0, 2.0, 6.0)
    assert model.active_profile_name == "Default"
    assert model.active_profile == Profile("Default", 1.0, 10.0, 2.0, 5.5)


def test_get_missing_profile_returns_none():
    assert ProfileModel().get_profile("Nope") is None


def test_create_profile_emits_and_stores():
    model = ProfileModel()
    calls = _recorder(model, "profile_created")
    profile = Profile("Work", 1.2, 12.0, 2.2, 5.8)
    model.create_profile(profile)
    assert model.get_profile("Work") == profile
    assert calls == [("Work",)]


def test_create_duplicate_raises():
    model = ProfileModel()
    with pytest.raises(ProfileError):
        model.create_profile(Profile("Sleep", 1.0, 10.0, 2.0, 5.5))


@pytest.mark.parametrize(
    "profile",
    [
        Profile("", 1.0, 10.0, 2.0, 5.5),
        Profile("X", 0.0, 10.0, 2.0, 5.5),
        Profile("X", 1.0, -1.0, 2.0, 5.5),
        Profile("X", 1.0, 10.0, 0.0, 5.5),
        Profile("X", 1.0, 10.0, 2.0, 0.0),
    ],
)
def test_create_invalid_raises(profile):
    model = ProfileModel()
    with pytest.raises(ProfileError):
        model.create_profile(profile)
    assert len(model.all_profiles()) == 3


def test_update_in_place():
    model = ProfileModel()
    calls = _recorder(model, "profile_updated")
    updated = Profile("Sleep", 0.9, 11.0, 2.1, 6.2)
    model.update_profile("Sleep", updated)
    assert model.get_profile("Sleep") == updated
    assert calls == [("Sleep",)]


def test_update_rename_moves_active_profile():
    model = ProfileModel()
    model.set_active_profile("Sleep")
    changes = _recorder(model, "active_profile_changed")
    model.update_profile("Sleep", Profile("Night", 0.8, 10.0, 2.0, 6.0))
    assert model.get_profile("Sleep") is None
    assert model.get_profile("Night") is not None
    assert model.active_profile_name == "Night"
    assert changes == [("Night",)]


def test_update_rename_conflict_raises():
    model = ProfileModel()
    with pytest.raises(ProfileError):
        model.update_profile("Sleep", Profile("Exercise", 0.8, 10.0, 2.0, 6.0))
    assert model.get_profile("Sleep").basal_rate == 0.8


def test_update_missing_raises():
    with pytest.raises(ProfileError):
        ProfileModel().update_profile("Ghost", Profile("Ghost", 1.0, 1.0, 1.0, 1.0))


def test_delete_default_raises():
    model = ProfileModel()
    with pytest.raises(ProfileError):
        model.delete_profile("Default")
    assert model.get_profile("Default") is not None


def test_delete_active_switches_to_default():
    model = ProfileModel()
    model.set_active_profile("Exercise")
    deleted = _recorder(model, "profile_deleted")
    model.delete_profile("Exercise")
    assert model.active_profile_name == "Default"
    assert model.get_profile("Exercise") is None
    assert deleted == [("Exercise",)]


def test_delete_missing_raises():
    with pytest.raises(ProfileError):
        ProfileModel().delete_profile("Ghost")


def test_set_active_missing_raises():
    model = ProfileModel()
    with pytest.raises(ProfileError):
        model.set_active_profile("Ghost")
    assert model.active_profile_name == "Default"


def test_set_active_same_does_not_emit():
    model = ProfileModel()
    changes = _recorder(model, "active_profile_changed")
    model.set_active_profile("Default")
    assert changes == []


def test_save_writes_expected_keys(tmp_path):
    model = ProfileModel()
    path = tmp_path / "profiles.json"
    model.save(path)
    data = json.loads(path.read_text())
    assert data["activeProfile"] == "Default"
    default = next(p for p in data["profiles"] if p["name"] == "Default")
    assert default == {
        "name": "Default",
        "basalRate": 1.0,
        "carbRatio": 10.0,
        "correctionFactor": 2.0,
        "targetGlucose": 5.5,
    }


def test_save_load_round_trip(tmp_path):
    model = ProfileModel()
    model.create_profile(Profile("Work", 1.2, 12.0, 2.2, 5.8))
    model.set_active_profile("Work")
    path = tmp_path / "profiles.json"
    model.save(path)

    other = ProfileModel()
    other.delete_profile("Sleep")
    other.load(path)
    assert other.all_profiles() == model.all_profiles()
    assert other.active_profile_name == "Work"


def test_load_does_not_overwrite_default(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(
        json.dumps(
            {
                "activeProfile": "Missing",
                "profiles": [
                    {
                        "name": "Default",
                        "basalRate": 3.0,
                        "carbRatio": 3.0,
                        "correctionFactor": 3.0,
                        "targetGlucose": 3.0,
                    }
                ],
            }
        )
    )
    model = ProfileModel()
    model.load(path)
    assert [p.name for p in model.all_profiles()] == ["Default"]
    assert model.get_profile("Default").basal_rate == 1.0
    assert model.active_profile_name == "Default"


def test_load_invalid_json_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("not json")
    model = ProfileModel()
    with pytest.raises(ValueError):
        model.load(path)
    assert len(model.all_profiles()) == 3


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        ProfileModel().load(tmp_path / "absent.json")


def test_connect_unknown_event_raises():
    with pytest.raises(ValueError):
        ProfileModel().connect("nonsense", lambda: None)