import asyncio

from config import configure_logging, load_settings
from db import (
    AsyncDatabase,
    ExerciseRepository,
    SetDetailRepository,
    ExerciseDetailRepository,
    UserRepository,
    WorkoutRepository,
    WorkoutPlanRepository,
    CompletedExerciseRepository,
    WorkoutSessionRepository,
)

SAMPLE_EXERCISES = [
    ("Bench Press", "strength", "Chest", "Lower the bar to the chest and press up."),
    ("Squat", "strength", "Quads", "Sit back until thighs are parallel, then stand."),
    ("Pull Up", "strength", "Back", "Pull until the chin clears the bar."),
    ("Running", "cardio", "Legs", "Keep a steady conversational pace."),
]


async def seed(db: AsyncDatabase) -> bool:
    """Insert a small demo data set. Returns False if exercises already exist."""
    await db.create_tables()
    exercises = ExerciseRepository(db)
    if await exercises.fetch_all():
        return False

    await db.bulk_insert(
        "Exercises",
        ["Name", "Type", "TargetedBodyParts", "Instructions"],
        SAMPLE_EXERCISES,
    )
    bench_id, squat_id = [row["ExerciseId"] for row in await exercises.fetch_all()][:2]

    user_id = await UserRepository(db).create(
        {"name": "Demo User", "fitness_level": "beginner", "goals": "Build strength"}
    )
    workout_id = await WorkoutRepository(db).create({"user_id": user_id, "name": "Full Body"})
    plan_id = await WorkoutPlanRepository(db).create(
        {"user_id": user_id, "name": "Beginner 3x5", "description": "Three sessions a week"}
    )

    set_details = SetDetailRepository(db)
    exercise_details = ExerciseDetailRepository(db)
    for order, exercise_id in enumerate([bench_id, squat_id], start=1):
        set_id = await set_details.create({"min_reps": 5, "max_reps": 5, "weight": 60})
        await exercise_details.create(
            {"exercise_id": exercise_id, "order": order, "set_detail_id": set_id}
        )
    await CompletedExerciseRepository(db).create({"exercise_id": bench_id, "order": 1})
    await WorkoutSessionRepository(db).create(
        {"user_id": user_id, "workout_plan_id": plan_id, "workout_id": workout_id}
    )
    return True


async def main(config_path: str = "settings.yaml") -> None:
    settings = load_settings(config_path)
    configure_logging(settings["log_level"])
    db = AsyncDatabase(settings["database_name"], settings["timeout"])
    try:
        if await seed(db):
            print("Seed data inserted")
        else:
            print("Database already contains exercises")
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
