"""
Core Questionnaire Model Objects

Defines the read-only inputs the scoring core receives from the
surrounding service:
    - Variables (named numeric slots a formula expects)
    - Questions
    - Possible answers (each owning one formula)
    - Answers (a chosen possible answer plus concrete variable values)
    - Sessions (the ordered answers of one respondent)
    - Questionnaires (root container)

ARCHITECTURAL RULE:
    These objects:
        - Carry data only, no scoring behavior
        - Are never persisted by this package
        - Are fully serializable
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import BindingError


@dataclass
class Variable:
    """
    Declares a formula variable.

    Properties:
        name: Variable identifier as written in formulas (e.g., "dist")
        description: Human-readable description (optional)
    """

    name: str
    description: Optional[str] = None


@dataclass
class Question:
    """
    A questionnaire question.

    Properties:
        name: Stable question identifier, used to group scores
        text: Human-readable question text
    """

    name: str
    text: str = ""


@dataclass
class PossibleAnswer:
    """
    One selectable answer of a question, owning a formula.

    Properties:
        id:
            Stable identifier of the possible answer

        question:
            Name of the Question this answer belongs to

        formula:
            Formula text evaluated when this answer is chosen
            Example: "floor(40 / n) * dist"

        variables:
            Names of the variables the respondent supplies with this answer
            Example: ["n", "dist"]

    IMPORTANT:
        The formula is not parsed here. Syntax is checked when the
        answer is scored or by the analyzer.
    """

    id: str
    question: str
    formula: str
    variables: List[str] = field(default_factory=list)


@dataclass
class VariableValue:
    """A concrete value the respondent supplied for one variable."""

    name: str
    value: float


@dataclass
class Answer:
    """
    A respondent's answer to one question.

    Properties:
        possible_answer: The chosen PossibleAnswer
        variable_values: Values for the formula's variables
        id: Optional answer identifier, reported when scoring fails
    """

    possible_answer: PossibleAnswer
    variable_values: List[VariableValue] = field(default_factory=list)
    id: Optional[str] = None

    def bindings(self) -> Dict[str, float]:
        """
        Build the variable binding for this answer's formula.

        Returns:
            Fresh dict of variable name → float value

        Raises:
            BindingError: If a variable name appears twice
        """
        result: Dict[str, float] = {}
        for vv in self.variable_values:
            if vv.name in result:
                raise BindingError(vv.name)
            result[vv.name] = float(vv.value)
        return result


@dataclass
class Session:
    """The ordered answers of one questionnaire run."""

    id: Optional[str] = None
    answers: List[Answer] = field(default_factory=list)


@dataclass
class Questionnaire:
    """
    Root container for a questionnaire definition.

    INVARIANTS:
        - Question names are unique
        - Possible answer ids are unique
        - Every possible answer references an existing question
        - Every variable a possible answer lists is declared in variables
    """

    name: str
    variables: List[Variable] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)
    possible_answers: List[PossibleAnswer] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    def get_variable(self, var_name: str) -> Optional[Variable]:
        """
        Retrieve a variable by name.

        Returns:
            Variable object or None if not found
        """
        for var in self.variables:
            if var.name == var_name:
                return var
        return None

    def get_question(self, name: str) -> Optional[Question]:
        """
        Retrieve a question by name.

        Returns:
            Question object or None if not found
        """
        for question in self.questions:
            if question.name == name:
                return question
        return None

    def get_possible_answer(self, answer_id: str) -> Optional[PossibleAnswer]:
        """
        Retrieve a possible answer by id.

        Returns:
            PossibleAnswer object or None if not found
        """
        for possible in self.possible_answers:
            if possible.id == answer_id:
                return possible
        return None

    def answers_for(self, question_name: str) -> List[PossibleAnswer]:
        """All possible answers of one question, in definition order."""
        return [p for p in self.possible_answers if p.question == question_name]
