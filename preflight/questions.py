"""Fixed pre-flight question template."""

from schemas.preflight import Question, QuestionCategory, QuestionType

# (category, text, type, required); users options come from configuration
QUESTION_TEMPLATE: list[tuple[QuestionCategory, str, QuestionType, bool]] = [
    (QuestionCategory.SCOPE, "What is the primary goal of this feature?", QuestionType.TEXT, True),
    (
        QuestionCategory.USERS,
        "Who will use this feature (which user roles)?",
        QuestionType.MULTI_SELECT,
        True,
    ),
    (
        QuestionCategory.WORKFLOW,
        "What are the main steps a user will take?",
        QuestionType.STEPS,
        True,
    ),
    (
        QuestionCategory.DATA,
        "What data needs to be captured or displayed?",
        QuestionType.LIST,
        True,
    ),
    (
        QuestionCategory.VALIDATION,
        "Are there any special validation rules or constraints?",
        QuestionType.TEXT,
        False,
    ),
    (
        QuestionCategory.INTEGRATION,
        "Does this feature integrate with existing functionality?",
        QuestionType.TEXT,
        False,
    ),
]


def build_questions(user_roles: list[str]) -> list[Question]:
    """Instantiate the template with fresh question ids."""
    return [
        Question(
            category=category,
            text=text,
            type=qtype,
            options=list(user_roles) if qtype == QuestionType.MULTI_SELECT else [],
            required=required,
        )
        for category, text, qtype, required in QUESTION_TEMPLATE
    ]
