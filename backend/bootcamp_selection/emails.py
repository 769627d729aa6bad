from __future__ import annotations
from html import escape
from typing import Optional

from .mailer import EmailMessage
from .settings import settings


def quiz_link(quiz_id: int, student_id: int) -> str:
	return f"{settings.public_base_url.rstrip('/')}/student/quiz/{quiz_id}?student={student_id}"


def video_link(student_id: int, quiz_id: Optional[int] = None) -> str:
	link = f"{settings.public_base_url.rstrip('/')}/student/submit-video?student={student_id}"
	if quiz_id is not None:
		link += f"&quiz={quiz_id}"
	return link


def quiz_invitation(*, to: str, student_name: str, quiz_id: int, student_id: int, quiz_name: str, time_per_question: int) -> EmailMessage:
	link = quiz_link(quiz_id, student_id)
	html = (
		"<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
		"<h2>Quiz Invitation</h2>"
		f"<p>Hello <strong>{escape(student_name)}</strong>,</p>"
		f"<p>You have been invited to take the quiz <strong>\"{escape(quiz_name)}\"</strong>.</p>"
		"<ul>"
		f"<li>You have <strong>{time_per_question} seconds</strong> to answer each question</li>"
		"<li>The quiz moves to the next question automatically when time runs out</li>"
		"<li>Make sure you have a stable internet connection</li>"
		"</ul>"
		f"<p><a href=\"{escape(link)}\">Start Quiz Now</a></p>"
		"<p style=\"color: #868e96; font-size: 12px;\">This is an automated message. Please do not reply.</p>"
		"</div>"
	)
	text = (
		f"Hello {student_name},\n\n"
		f"You have been invited to take the quiz \"{quiz_name}\".\n"
		f"You have {time_per_question} seconds to answer each question.\n\n"
		f"Start the quiz: {link}\n"
	)
	return EmailMessage(
		to=to,
		subject=f"Quiz Invitation - {quiz_name} ({time_per_question}s per question)",
		html=html,
		text=text,
	)


def video_invitation(*, to: str, student_name: str, student_id: int, quiz_id: Optional[int], percentage: float, topic: Optional[str] = None) -> EmailMessage:
	topic = topic or settings.video_topic
	link = video_link(student_id, quiz_id)
	html = (
		"<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
		"<h2>Congratulations!</h2>"
		f"<p>Dear {escape(student_name)},</p>"
		f"<p>You scored <strong>{percentage:.1f}%</strong> and are one of the top performers in the quiz round.</p>"
		f"<p>Please submit a short YouTube video on the topic <strong>\"{escape(topic)}\"</strong>.</p>"
		f"<p><a href=\"{escape(link)}\">Submit your video</a></p>"
		"</div>"
	)
	text = (
		f"Dear {student_name},\n\n"
		f"You scored {percentage:.1f}% and are one of the top performers in the quiz round.\n"
		f"Please submit a short YouTube video on the topic \"{topic}\": {link}\n"
	)
	return EmailMessage(to=to, subject="Congratulations! You advanced to the video round", html=html, text=text)


def winner_notification(
	*,
	to: str,
	student_name: str,
	position: int,
	prize: str,
	video_score: float,
	final_score: float,
	video_title: Optional[str],
) -> EmailMessage:
	title = video_title or "your video submission"
	html = (
		"<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
		"<h1>Congratulations!</h1>"
		f"<p>Dear {escape(student_name)},</p>"
		"<p>Your video submission has been selected as one of the top performers in our contest.</p>"
		f"<h2>{escape(prize)}</h2>"
		f"<p>Position #{position} out of all submissions</p>"
		"<h3>Your Performance</h3>"
		f"<p>Video Analysis Score: {video_score:g}/100<br>Final Score: <strong>{final_score:g}/100</strong></p>"
		f"<p>Your video submission: <strong>{escape(title)}</strong></p>"
		"<p>We will be in touch soon with details about your certificate.</p>"
		"<p>Best regards,<br>The Contest Team</p>"
		"</div>"
	)
	text = (
		"Congratulations!\n\n"
		f"Dear {student_name},\n\n"
		"Your video submission has been selected as one of the top performers in our contest.\n\n"
		f"Award: {prize}\n"
		f"Position: #{position} out of all submissions\n\n"
		f"Video Analysis Score: {video_score:g}/100\n"
		f"Final Score: {final_score:g}/100\n\n"
		f"Video Submission: {title}\n\n"
		"Best regards,\nThe Contest Team\n"
	)
	return EmailMessage(to=to, subject=f"Congratulations! You're a Winner - {prize}", html=html, text=text)


def prize_for(position: int) -> str:
	if 1 <= position <= len(settings.prizes):
		return settings.prizes[position - 1]
	return settings.finalist_prize
