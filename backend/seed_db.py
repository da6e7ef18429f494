"""One-time DB setup: create tables and seed a demo course."""
from courseflow.db.session import Base, get_engine, get_session_factory
from courseflow.db.models import (
    Course,
    ItemKindEnum,
    Lesson,
    Module,
    ModuleContent,
    Question,
    QuestionTypeEnum,
    Quiz,
    QuizQuestion,
    RoleEnum,
    User,
)
from courseflow.core.security import hash_password

# 1. Create all tables
engine = get_engine()
Base.metadata.create_all(bind=engine)
print("✅ All tables created")

session_factory = get_session_factory()
with session_factory() as db:
    # 2. Test users
    for email, password, name, role in (
        ("admin@example.com", "admin123", "Admin User", RoleEnum.ADMIN),
        ("student@example.com", "student123", "Student User", RoleEnum.STUDENT),
    ):
        if db.query(User).filter(User.email == email).first():
            print(f"  {email} already exists")
            continue
        db.add(
            User(
                email=email,
                hashed_password=hash_password(password),
                full_name=name,
                role=role,
            )
        )
        db.commit()
        print(f"✅ Created {role.value}: {email} / {password}")

    # 3. Demo course: two modules, first two items free
    if db.query(Course).filter(Course.title == "Python Foundations").first():
        print("  Demo course already exists")
    else:
        course = Course(title="Python Foundations", free_item_count=2)
        intro = Module(title="Getting started", position=0)
        basics = Module(title="Core syntax", position=1)
        course.modules = [intro, basics]
        db.add(course)
        db.flush()

        welcome = Lesson(module_id=intro.id, title="Welcome", order=0, duration_seconds=180)
        setup = Lesson(module_id=intro.id, title="Installing Python", order=1, duration_seconds=420)
        variables = Lesson(module_id=basics.id, title="Variables", order=0, duration_seconds=600)
        db.add_all([welcome, setup, variables])
        db.flush()

        check = Quiz(
            title="Getting started check",
            course_id=course.id,
            module_id=intro.id,
            lesson_id=setup.id,
            passing_score=70,
            max_attempts=3,
        )
        db.add(check)
        db.flush()

        questions = [
            Question(
                text="Which command starts the interactive interpreter?",
                question_type=QuestionTypeEnum.MULTIPLE_CHOICE,
                options=[
                    {"text": "python", "is_correct": True},
                    {"text": "pip", "is_correct": False},
                    {"text": "venv", "is_correct": False},
                ],
            ),
            Question(
                text="Python is dynamically typed.",
                question_type=QuestionTypeEnum.TRUE_FALSE,
                correct_boolean=True,
            ),
            Question(
                text="The file extension of a Python module is ____.",
                question_type=QuestionTypeEnum.FILL_BLANK,
                correct_answer=".py",
                acceptable_answers=[".py", "py"],
            ),
        ]
        db.add_all(questions)
        db.flush()
        check.quiz_questions = [
            QuizQuestion(question_id=q.id, position=i) for i, q in enumerate(questions)
        ]

        intro.contents = [
            ModuleContent(position=0, kind=ItemKindEnum.LESSON, lesson_id=welcome.id),
            ModuleContent(position=1, kind=ItemKindEnum.LESSON, lesson_id=setup.id),
            ModuleContent(position=2, kind=ItemKindEnum.QUIZ, quiz_id=check.id),
        ]
        db.commit()
        print(f"✅ Created demo course '{course.title}' (id={course.id})")
