"""
Example questionnaire and session for proof-of-concept scoring.

The three answers reproduce the reference calculation:
    floor(40 / n) * dist     n=5, dist=3         ->  24
    round(sin(x * y) / 2)    x=3.5, y=-2.5       ->   0
    -1 * ceil(0.3 * x)       x=100.001           -> -31
                                          total  ->  -7
"""
from surveyscore.model import (
    Answer,
    PossibleAnswer,
    Question,
    Questionnaire,
    Session,
    Variable,
    VariableValue,
)


def build_example_questionnaire() -> Questionnaire:
    questionnaire = Questionnaire(name="Example Energy Questionnaire")

    questionnaire.questions = [
        Question(name="Commute", text="How far do you commute, and how often per week?"),
        Question(name="Appliances", text="How do you use your appliances?"),
        Question(name="Heating", text="What is your heated living area?"),
    ]

    questionnaire.possible_answers = [
        PossibleAnswer(id="commute-car", question="Commute",
                       formula="floor(40 / n) * dist", variables=["n", "dist"]),
        PossibleAnswer(id="appliances-mixed", question="Appliances",
                       formula="round(sin(x * y) / 2)", variables=["x", "y"]),
        PossibleAnswer(id="heating-solar", question="Heating",
                       formula="-1 * ceil(0.3 * x)", variables=["x"]),
    ]

    questionnaire.variables = [
        Variable(name="n", description="Trips per week"),
        Variable(name="dist", description="Distance per trip (km)"),
        Variable(name="x", description="First scale factor"),
        Variable(name="y", description="Second scale factor"),
    ]

    questionnaire.metadata = {"source": "reference calculation"}
    return questionnaire


def build_example_session(questionnaire: Questionnaire = None) -> Session:
    if questionnaire is None:
        questionnaire = build_example_questionnaire()

    def answer(answer_id: str, possible_id: str, **values: float) -> Answer:
        return Answer(
            possible_answer=questionnaire.get_possible_answer(possible_id),
            variable_values=[VariableValue(name=k, value=v) for k, v in values.items()],
            id=answer_id,
        )

    return Session(
        id="example-session",
        answers=[
            answer("a1", "commute-car", n=5.0, dist=3.0),
            answer("a2", "appliances-mixed", x=3.5, y=-2.5),
            answer("a3", "heating-solar", x=100.001),
        ],
    )
