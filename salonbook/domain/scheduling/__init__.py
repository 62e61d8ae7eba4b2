"""
Scheduling Domain

This domain turns a specialist's working days, breaks and appointments
into bookable slots and guards every change to them.

Structure:
```
salonbook/domain/scheduling/
├── __init__.py
├── errors.py               # Error kinds, exceptions, Verdict
├── time_utils.py           # HH:MM parsing, minute arithmetic, overlap
├── clock.py                # Clock capability, provider-local "now"
├── schemas.py              # Engine data + API request/response models
├── slot_generator.py       # Candidate slots and free gaps for a day
├── conflict_validator.py   # Working day, break and placement checks
├── lifecycle.py            # Appointment status state machine
├── day_off.py              # Staged reconciliation of a removed day
├── patterns.py             # Weekly / rotation / dates expansion
├── repository.py           # Database queries
├── service.py              # Business logic
└── router.py               # FastAPI endpoints
```

Engine modules (everything except repository/service/router) do no I/O:
callers pass in what they loaded plus a Clock and get deterministic results.

Status machine:
  pending → confirmed, cancelled
  confirmed → completed, cancelled, no_show
  completed, cancelled, no_show → (terminal)
"""
