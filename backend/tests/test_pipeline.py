from bootcamp_selection.funnel import final_score, quiz_stage_policy, video_stage_policy
from bootcamp_selection.pipeline.aggregation import AnswerRecord, aggregate_answers
from bootcamp_selection.pipeline.cohort import CohortPolicy, select_cohort
from bootcamp_selection.pipeline.scoring import score_tally

QUIZ = "quiz-1"
QUESTIONS = {f"q{i}": QUIZ for i in range(10)}


def _answers(student, n_correct, n_answered=10):
	return [
		AnswerRecord(student_id=student, question_id=f"q{i}", answer_text="a", is_correct=i < n_correct)
		for i in range(n_answered)
	]


def test_quiz_round_from_answers_to_cohort() -> None:
	records = _answers("A", 10) + _answers("B", 8) + _answers("C", 5, n_answered=5)
	tallies = aggregate_answers(records, QUESTIONS)
	entities = [score_tally(t, 10) for t in tallies.values()]

	assert {e.identity: e.percentage for e in entities} == {"A": 100.0, "B": 80.0, "C": 50.0}
	assert ("D", QUIZ) not in tallies
	assert [e.identity for e in select_cohort(entities, CohortPolicy.top(2))] == ["A", "B"]


def test_stage_policies_follow_settings_defaults() -> None:
	assert quiz_stage_policy() == CohortPolicy.top_percent(10, minimum=1, maximum=None)
	assert video_stage_policy() == CohortPolicy.top_percent(5, minimum=1, maximum=10)
	assert video_stage_policy(top_n=3) == CohortPolicy.top(3)
	assert quiz_stage_policy(top_percent=50, minimum=2, maximum=4) == CohortPolicy(proportion=0.5, minimum=2, maximum=4)


def test_final_score_blends_quiz_and_video() -> None:
	assert final_score(83, 66.7) == 74.9
	assert final_score(83, None) == 83.0
