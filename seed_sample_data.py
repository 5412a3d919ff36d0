from rest_api import ProgramAPI


def seed(api: ProgramAPI | None = None) -> int | None:
    api = api or ProgramAPI()
    if api.programs.fetch_all():
        print("Database already contains programs")
        return None

    pid = api.service.create_program("Upper/Lower", "Two day split")
    upper = api.service.add_day(pid, "Upper", "monday")
    lower = api.service.add_day(pid, "Lower", "thursday")
    api.service.add_exercise(upper, "Bench Press", target_sets=4, target_reps="8")
    api.service.add_exercise(upper, "Barbell Row", target_sets=4, target_reps="10")
    api.service.add_exercise(lower, "Back Squat", target_sets=5, target_reps="5")
    api.service.add_exercise(lower, "Romanian Deadlift", target_reps="12-10-8")
    api.service.activate_program(pid)
    print("Seed data inserted")
    return pid


if __name__ == "__main__":
    seed()
