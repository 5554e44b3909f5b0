import os
import sys
import sqlite3
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    UserRepository,
    ExerciseRepository,
    SetDetailRepository,
    ExerciseDetailRepository,
    WorkoutRepository,
    WorkoutPlanRepository,
    CompletedExerciseRepository,
    WorkoutSessionRepository,
    MissingParametersError,
    InvalidIdError,
    NoValidFieldsError,
    UnknownIdentifierError,
    ValidationError,
)


async def _user(db, name="Ann") -> int:
    return await UserRepository(db).create({"name": name})


async def _exercise(db, name="Bench Press") -> int:
    return await ExerciseRepository(db).create({"name": name, "type": "strength"})


async def _set_detail(db) -> int:
    return await SetDetailRepository(db).create({"min_reps": 8, "max_reps": 12, "weight": 40})


async def _plan(db, user_id) -> int:
    return await WorkoutPlanRepository(db).create({"user_id": user_id, "name": "PPL"})


async def _workout(db, user_id) -> int:
    return await WorkoutRepository(db).create({"user_id": user_id, "name": "Push"})


@pytest.mark.asyncio
async def test_user_crud(db):
    repo = UserRepository(db)
    uid = await repo.create(
        {"name": "Ann", "email": "ann@example.com", "fitness_level": "beginner"}
    )
    assert uid == 1
    row = await repo.fetch_by_id(uid)
    assert row["Name"] == "Ann"
    assert row["Email"] == "ann@example.com"
    assert row["FitnessLevel"] == "beginner"
    assert row["PasswordHash"] is None
    assert row["Goals"] is None
    assert row["CreatedAt"]

    await repo.update(uid, {"goals": "Run 10k", "fitness_level": "advanced"})
    row = await repo.fetch_by_id(uid)
    assert row["Goals"] == "Run 10k"
    assert row["FitnessLevel"] == "advanced"

    await repo.delete(uid)
    assert await repo.fetch_by_id(uid) is None
    assert await repo.fetch_all() == []


@pytest.mark.asyncio
async def test_user_email_unique_when_present(db):
    repo = UserRepository(db)
    await repo.create({"name": "Ann"})
    await repo.create({"name": "Bob"})
    await repo.create({"name": "Cat", "email": "cat@example.com"})
    with pytest.raises(sqlite3.IntegrityError):
        await repo.create({"name": "Cat 2", "email": "cat@example.com"})
    assert len(await repo.fetch_all()) == 3


@pytest.mark.asyncio
async def test_blank_optional_fields_are_stored_as_defaults(db):
    users = UserRepository(db)
    ann = await users.create({"name": "Ann", "email": "", "goals": ""})
    bob = await users.create({"name": "Bob", "email": ""})
    assert (await users.fetch_by_id(ann))["Email"] is None
    assert (await users.fetch_by_id(ann))["Goals"] is None
    assert (await users.fetch_by_id(bob))["Email"] is None

    uid = await _user(db, "Cat")
    plans = WorkoutPlanRepository(db)
    pid = await plans.create({"user_id": uid, "name": "5x5", "description": None})
    assert (await plans.fetch_by_id(pid))["Description"] == ""


@pytest.mark.asyncio
async def test_user_update_errors_are_raised(db):
    repo = UserRepository(db)
    uid = await repo.create({"name": "Ann"})
    with pytest.raises(sqlite3.IntegrityError):
        await repo.update(uid, {"fitness_level": "elite"})
    assert (await repo.fetch_by_id(uid))["FitnessLevel"] is None


@pytest.mark.asyncio
async def test_exercise_crud_and_defaults(db):
    repo = ExerciseRepository(db)
    eid = await repo.create(
        {"name": "Squat", "type": "strength", "targeted_body_parts": "Quads"}
    )
    row = await repo.fetch_by_id(eid)
    assert row == {
        "ExerciseId": eid,
        "Name": "Squat",
        "Type": "strength",
        "TargetedBodyParts": "Quads",
        "Instructions": None,
        "VideoUrl": None,
        "GifUrl": None,
    }
    await repo.update(eid, {"video_url": "https://example.com/squat.mp4"})
    assert (await repo.fetch_by_id(eid))["VideoUrl"] == "https://example.com/squat.mp4"


@pytest.mark.asyncio
async def test_exercise_rejects_unknown_body_part(db):
    with pytest.raises(sqlite3.IntegrityError):
        await ExerciseRepository(db).create(
            {"name": "Neck Curl", "type": "strength", "targeted_body_parts": "Neck"}
        )
    assert await ExerciseRepository(db).fetch_all() == []


@pytest.mark.asyncio
async def test_set_detail_booleans_default_false(db):
    repo = SetDetailRepository(db)
    sid = await repo.create({"min_reps": 5, "max_reps": 8, "weight": 0, "amrap": True})
    row = await repo.fetch_by_id(sid)
    assert row["Weight"] == 0
    assert row["AMRAP"] is True
    for column in ("Paused", "Fast", "Forced", "Dropset"):
        assert row[column] is False
    await repo.update(sid, {"amrap": False, "dropset": True})
    row = await repo.fetch_by_id(sid)
    assert row["AMRAP"] is False
    assert row["Dropset"] is True


@pytest.mark.asyncio
async def test_exercise_detail_crud(db):
    eid = await _exercise(db)
    first = await _set_detail(db)
    second = await _set_detail(db)
    repo = ExerciseDetailRepository(db)
    late = await repo.create({"exercise_id": eid, "order": 2, "set_detail_id": second})
    early = await repo.create({"exercise_id": eid, "order": 1, "set_detail_id": first})
    rows = await repo.fetch_for_exercise(eid)
    assert [r["ExerciseDetailId"] for r in rows] == [early, late]
    assert rows[0]["SetDetails"] == first

    await repo.update(late, {"order": 0})
    assert (await repo.fetch_by_id(late))["Order"] == 0


@pytest.mark.asyncio
async def test_exercise_detail_requires_existing_parents(db):
    with pytest.raises(sqlite3.IntegrityError):
        await ExerciseDetailRepository(db).create(
            {"exercise_id": 99, "order": 1, "set_detail_id": 99}
        )


@pytest.mark.asyncio
async def test_workout_plan_description_defaults_to_empty(db):
    uid = await _user(db)
    repo = WorkoutPlanRepository(db)
    pid = await repo.create({"user_id": uid, "name": "5x5"})
    assert (await repo.fetch_by_id(pid))["Description"] == ""
    await repo.update(pid, {"description": "Heavy compounds"})
    assert (await repo.fetch_by_id(pid))["Description"] == "Heavy compounds"
    assert [r["WorkoutPlanId"] for r in await repo.fetch_for_user(uid)] == [pid]


@pytest.mark.asyncio
async def test_workout_and_completed_exercise_crud(db):
    uid = await _user(db)
    workouts = WorkoutRepository(db)
    wid = await workouts.create({"user_id": uid, "name": "Leg Day"})
    await workouts.update(wid, {"name": "Legs"})
    assert (await workouts.fetch_by_id(wid))["Name"] == "Legs"
    assert [r["WorkoutId"] for r in await workouts.fetch_for_user(uid)] == [wid]

    eid = await _exercise(db)
    completed = CompletedExerciseRepository(db)
    cid = await completed.create({"exercise_id": eid, "order": 0})
    row = await completed.fetch_by_id(cid)
    assert row == {"CompletedExerciseId": cid, "ExerciseId": eid, "Order": 0}
    await completed.delete(cid)
    assert await completed.fetch_by_id(cid) is None


@pytest.mark.asyncio
async def test_workout_session_crud(db):
    uid = await _user(db)
    pid = await _plan(db, uid)
    wid = await _workout(db, uid)
    repo = WorkoutSessionRepository(db)
    sid = await repo.create({"user_id": uid, "workout_plan_id": pid, "workout_id": wid})
    assert await repo.fetch_by_id(sid) == {
        "WorkoutSessionId": sid,
        "UserId": uid,
        "WorkoutPlanId": pid,
        "WorkoutId": wid,
    }
    other = await _workout(db, uid)
    await repo.update(sid, {"workout_id": other})
    assert (await repo.fetch_by_id(sid))["WorkoutId"] == other
    assert len(await repo.fetch_for_user(uid)) == 1


@pytest.mark.parametrize(
    "repo_cls, payload, missing",
    [
        (UserRepository, {}, ["name"]),
        (ExerciseRepository, {"instructions": "x"}, ["name", "type"]),
        (ExerciseRepository, {"name": "", "type": "cardio"}, ["name"]),
        (SetDetailRepository, {"max_reps": 5}, ["min_reps", "weight"]),
        (ExerciseDetailRepository, {"order": 1}, ["exercise_id", "set_detail_id"]),
        (WorkoutRepository, {"name": "Leg Day"}, ["user_id"]),
        (WorkoutPlanRepository, {"description": "x"}, ["user_id", "name"]),
        (CompletedExerciseRepository, {"exercise_id": None}, ["exercise_id", "order"]),
        (
            WorkoutSessionRepository,
            {"user_id": 1},
            ["workout_plan_id", "workout_id"],
        ),
    ],
)
@pytest.mark.asyncio
async def test_create_reports_every_missing_field(db, repo_cls, payload, missing):
    repo = repo_cls(db)
    with pytest.raises(MissingParametersError) as excinfo:
        await repo.create(payload)
    assert excinfo.value.missing == missing
    assert str(excinfo.value) == f"Missing required parameters: {', '.join(missing)}"
    assert isinstance(excinfo.value, ValidationError)
    assert await repo.fetch_all() == []


@pytest.mark.asyncio
async def test_update_without_valid_fields_leaves_row(db):
    repo = ExerciseRepository(db)
    eid = await _exercise(db)
    before = await repo.fetch_by_id(eid)
    with pytest.raises(NoValidFieldsError):
        await repo.update(eid, {})
    with pytest.raises(NoValidFieldsError):
        await repo.update(eid, {"colour": "red", "ExerciseId": 5})
    with pytest.raises(NoValidFieldsError):
        await repo.update(eid, {"name": None})
    assert await repo.fetch_by_id(eid) == before


@pytest.mark.parametrize(
    "repo_cls",
    [
        UserRepository,
        ExerciseRepository,
        SetDetailRepository,
        ExerciseDetailRepository,
        WorkoutRepository,
        WorkoutPlanRepository,
        CompletedExerciseRepository,
        WorkoutSessionRepository,
    ],
)
@pytest.mark.parametrize("bad_id", ["1", None, 0, -3, 1.5, True])
@pytest.mark.asyncio
async def test_update_rejects_invalid_id(db, repo_cls, bad_id):
    with pytest.raises(InvalidIdError):
        await repo_cls(db).update(bad_id, {"name": "x"})


@pytest.mark.asyncio
async def test_delete_missing_row_is_noop(db):
    repo = ExerciseRepository(db)
    await _exercise(db)
    await repo.delete(42)
    assert len(await repo.fetch_all()) == 1


@pytest.mark.asyncio
async def test_fetch_by_unknown_field(db):
    with pytest.raises(UnknownIdentifierError):
        await WorkoutRepository(db).fetch_by("UserId", 1)


@pytest.mark.asyncio
async def test_fetch_all_returns_rows_in_id_order(db):
    repo = UserRepository(db)
    for name in ("Ann", "Bob", "Cat"):
        await repo.create({"name": name})
    assert [r["Name"] for r in await repo.fetch_all()] == ["Ann", "Bob", "Cat"]
