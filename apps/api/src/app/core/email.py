"""
Email Service using Resend

Sends parent-facing e-mails about document processing and renders their
Vietnamese templates.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from html import escape
from typing import Any

import resend

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = os.getenv("RESEND_API_KEY")

# Configurations
EMAIL_FROM = os.getenv("EMAIL_FROM", "Tuyển sinh <noreply@admissions.local>")
DEFAULT_SCHOOL_NAME = "Trường THCS Lê Lợi"

DOCUMENT_TYPE_LABELS = {
    "transcript": "học bạ",
    "certificate": "chứng chỉ",
}


@dataclass
class EmailContent:
    subject: str
    text: str
    html: str


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: str | None = None,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email
        text_content: Plain-text alternative

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def document_type_label(document_type: str | None) -> str:
    return DOCUMENT_TYPE_LABELS.get(document_type or "", document_type or "hồ sơ")


def _wrap(heading: str, heading_color: str, body: str, school_name: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: {heading_color}; margin-bottom: 20px;">{heading}</h2>
        {body}
        <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee;">
            <p style="color: #34495e; margin: 0;">Trân trọng,</p>
            <p style="color: #34495e; font-weight: bold; margin: 5px 0;">{escape(school_name)}</p>
        </div>
    </div>
    """


def render_transcript_table(transcript: dict[str, Any]) -> str:
    """Per-class grade tables (Môn / Mức / Điểm) of a normalized transcript."""
    sections = []
    for class_name, record in transcript.items():
        rows = []
        for subject in record.get("monHoc", []):
            score = subject.get("diem")
            rows.append(
                "<tr>"
                f'<td style="padding: 6px; border: 1px solid #ddd;">{escape(str(subject.get("mon", "")))}</td>'
                f'<td style="padding: 6px; border: 1px solid #ddd; text-align: center;">{escape(str(subject.get("muc", "")))}</td>'
                f'<td style="padding: 6px; border: 1px solid #ddd; text-align: center;">{"-" if score is None else escape(str(score))}</td>'
                "</tr>"
            )
        sections.append(
            f"""
        <h3 style="color: #2c3e50;">{escape(str(class_name))}: {escape(str(record.get("ten", "")))}</h3>
        <table style="border-collapse: collapse; width: 100%; color: #34495e;">
            <thead>
                <tr style="background-color: #f8f9fa;">
                    <th style="padding: 6px; border: 1px solid #ddd; text-align: left;">Môn</th>
                    <th style="padding: 6px; border: 1px solid #ddd;">Mức</th>
                    <th style="padding: 6px; border: 1px solid #ddd;">Điểm</th>
                </tr>
            </thead>
            <tbody>{"".join(rows)}</tbody>
        </table>
            """
        )
    return "".join(sections)


def render_document_processed(
    student_name: str,
    job_id: str,
    document_type: str | None,
    school_name: str | None = None,
    transcript: dict[str, Any] | None = None,
) -> EmailContent:
    """Parent notice that a document was processed successfully."""
    label = document_type_label(document_type)
    school = school_name or DEFAULT_SCHOOL_NAME
    subject = f"Thông báo xử lý {label} hoàn tất"

    text = (
        f"Kính gửi Phụ huynh/Người giám hộ của học sinh {student_name},\n\n"
        f"Hệ thống xin thông báo {label} của học sinh đã được xử lý thành công.\n\n"
        f"Chi tiết:\n- Học sinh: {student_name}\n- Loại hồ sơ: {label}\n- Mã xử lý: {job_id}\n\n"
        "Quý phụ huynh vui lòng đăng nhập vào hệ thống để xem chi tiết kết quả.\n\n"
        f"Trân trọng,\n{school}"
    )

    body = f"""
        <p style="color: #34495e; line-height: 1.6;">Kính gửi Phụ huynh/Người giám hộ của học sinh <strong>{escape(student_name)}</strong>,</p>
        <p style="color: #34495e; line-height: 1.6;">Hệ thống xin thông báo {escape(label)} của học sinh đã được xử lý thành công.</p>
        <div style="background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin: 20px 0;">
            <h3 style="color: #2c3e50; margin-top: 0;">Chi tiết:</h3>
            <ul style="color: #34495e; line-height: 1.6;">
                <li>Học sinh: <strong>{escape(student_name)}</strong></li>
                <li>Loại hồ sơ: <strong>{escape(label)}</strong></li>
                <li>Mã xử lý: <strong>{escape(job_id)}</strong></li>
            </ul>
        </div>
        {render_transcript_table(transcript) if transcript else ""}
        <p style="color: #34495e; line-height: 1.6;">Quý phụ huynh vui lòng đăng nhập vào hệ thống để xem chi tiết kết quả.</p>
    """
    return EmailContent(subject=subject, text=text, html=_wrap(subject, "#2c3e50", body, school))


def render_document_error(
    student_name: str,
    job_id: str,
    document_type: str | None,
    error: str,
    school_name: str | None = None,
) -> EmailContent:
    """Parent notice that a document could not be processed."""
    label = document_type_label(document_type)
    school = school_name or DEFAULT_SCHOOL_NAME
    subject = f"Thông báo lỗi xử lý {label}"

    text = (
        f"Kính gửi Phụ huynh/Người giám hộ của học sinh {student_name},\n\n"
        f"Hệ thống gặp lỗi khi xử lý {label} của học sinh.\n\n"
        f"Chi tiết:\n- Học sinh: {student_name}\n- Loại hồ sơ: {label}\n- Mã xử lý: {job_id}\n- Lỗi: {error}\n\n"
        "Quý phụ huynh vui lòng kiểm tra lại hồ sơ và thử lại.\n"
        "Nếu cần hỗ trợ, vui lòng liên hệ với nhà trường.\n\n"
        f"Trân trọng,\n{school}"
    )

    body = f"""
        <p style="color: #34495e; line-height: 1.6;">Kính gửi Phụ huynh/Người giám hộ của học sinh <strong>{escape(student_name)}</strong>,</p>
        <p style="color: #34495e; line-height: 1.6;">Hệ thống gặp lỗi khi xử lý {escape(label)} của học sinh.</p>
        <div style="background-color: #fff3f3; padding: 15px; border-radius: 5px; margin: 20px 0; border: 1px solid #ffd7d7;">
            <h3 style="color: #c0392b; margin-top: 0;">Chi tiết lỗi:</h3>
            <ul style="color: #34495e; line-height: 1.6;">
                <li>Học sinh: <strong>{escape(student_name)}</strong></li>
                <li>Loại hồ sơ: <strong>{escape(label)}</strong></li>
                <li>Mã xử lý: <strong>{escape(job_id)}</strong></li>
                <li>Lỗi: <strong>{escape(error)}</strong></li>
            </ul>
        </div>
        <p style="color: #34495e; line-height: 1.6;">
            Quý phụ huynh vui lòng kiểm tra lại hồ sơ và thử lại.<br>
            Nếu cần hỗ trợ, vui lòng liên hệ với nhà trường.
        </p>
    """
    return EmailContent(subject=subject, text=text, html=_wrap(subject, "#e74c3c", body, school))


def render_generic(
    title: str,
    message: str,
    html_content: str | None = None,
    school_name: str | None = None,
) -> EmailContent:
    """E-mail built from an arbitrary notification title and message."""
    school = school_name or DEFAULT_SCHOOL_NAME
    body = html_content or (
        f'<p style="color: #34495e; line-height: 1.6;">{escape(message).replace(chr(10), "<br>")}</p>'
    )
    return EmailContent(
        subject=title,
        text=f"{message}\n\nTrân trọng,\n{school}",
        html=_wrap(escape(title), "#2c3e50", body, school),
    )
