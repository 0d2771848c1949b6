# pumpsim

Simulation models for an insulin pump. The package holds the data and the
rules behind a pump simulator. It has no user interface. There are four
modules:

- `pumpsim.profilemodel`: `Profile`, `ProfileModel` and `ProfileError`.
  Each profile is a name plus a basal rate, carb ratio, correction factor and
  target glucose. A new `ProfileModel` starts with the profiles `Default`,
  `Sleep` and `Exercise`, and `Default` is active. `create_profile`,
  `update_profile`, `delete_profile` and `set_active_profile` raise
  `ProfileError` in these cases:
  - the profile is invalid (an empty name or a setting that is not positive);
  - the name is already taken;
  - the profile is unknown;
  - the call would delete `Default`.

  `get_profile` returns `None` for an unknown name. `all_profiles` returns
  the profiles ordered by name.
- `pumpsim.glucosemodel`: `GlucoseModel` and `TrendDirection`.
  - Readings are `(datetime, mmol/L)` pairs.
  - On construction the model fills itself with a synthetic pattern, one
    reading every 5 minutes, 48 hours back by default. You can pass
    `rng`, `now` and `history_hours` to the constructor.
  - `add_reading` keeps only the newest 288 readings.
  - The trend is recalculated from the slope of the last three readings.
  - `readings_between` filters the readings by time. `force_trend` and
    `clear_readings` set the trend directly.
- `pumpsim.insulinmodel`: `InsulinModel`, `BolusDelivery` and
  `BasalDelivery`.
  - Basal rates are clamped to 0–5 u/hr, and boluses are capped at 25 units.
  - `deliver_bolus` raises `ValueError` for an amount that is not positive,
    and `RuntimeError` while another bolus is running.
  - `cancel_bolus` records half of the requested units as delivered and
    returns that amount. It raises `RuntimeError` when no bolus is running.
  - Insulin on board decays linearly over four hours.
  - `bolus_history`, `basal_history`, `total_bolus`, `total_basal` and
    `total_insulin` report on a time window.
  - You can pass a `clock` callable to the constructor to control "now".
- `pumpsim.pumpmodel`: `PumpModel`, `PumpState` and `AlertLevel`.
  - Battery is clamped to 0–100 % and the reservoir to 0–300 units.
  - The model also tracks pump state, the current profile name, insulin on
    board, Control-IQ delivery, a list of active alerts, and glucose and
    insulin delivery logs.
  - `reduce_insulin` draws from the reservoir and logs the delivery.
  - `clear_alert` ignores an index that is out of range.

Each model saves to and loads from a JSON file: `save`/`load`, or
`save_state`/`load_state` for `PumpModel`. Each model takes callbacks for
named events through `connect(event, callback)`. An unknown event name
raises `ValueError`.

## Installation

```
pip install .
```

To install with the test dependencies and run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from pumpsim.insulinmodel import InsulinModel
from pumpsim.profilemodel import Profile, ProfileModel
from pumpsim.pumpmodel import AlertLevel, PumpModel

profiles = ProfileModel()
profiles.create_profile(Profile("Weekend", 0.9, 12.0, 2.0, 5.8))
profiles.set_active_profile("Weekend")

insulin = InsulinModel()
insulin.start_basal(profiles.active_profile.basal_rate, "Weekend")
insulin.deliver_bolus(2.0, "Meal")
insulin.complete_bolus()

pump = PumpModel()
pump.connect("alert_added", lambda message, level: print(level.name, message))
pump.add_alert("Low reservoir", AlertLevel.WARNING)
pump.save_state("pump.json")
```

## What the package does not do

- There is no application, command or screen. The models are for other
  code to drive.
- Nothing runs on a timer.
  - A standard bolus finishes when you call `InsulinModel.complete_bolus`.
  - An extended bolus takes ten calls to `advance_extended_bolus`.
    `extended_step_interval` gives the intended spacing between calls.
  - Insulin on board is recomputed only when `update_iob` runs, either
    directly or from a delivery change.
- The models are independent of each other. There is no controller that
  ties them together, no automatic basal algorithm and no alert logic
  beyond storing the alerts you add.