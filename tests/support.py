"""Shared test setup: temp storage paths, a scripted AI client, and sample documents.

Import this module before anything from ``prepkit`` so settings pick up the
temporary paths.
"""

import json
import os
import sys
import tempfile
from io import BytesIO
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

_TMP_DIR = tempfile.mkdtemp(prefix="prepkit-tests-")

os.environ.setdefault("DATABASE_PATH", os.path.join(_TMP_DIR, "prepkit.db"))
os.environ.setdefault("ANALYTICS_ENABLED", "1")
os.environ.setdefault("ANALYTICS_DB_PATH", os.path.join(_TMP_DIR, "analytics.db"))
os.environ.setdefault("LLM_RATE_LIMIT_DB_PATH", os.path.join(_TMP_DIR, "llm_rate_limit.db"))
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("API_KEY", "test-admin-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-0123456789")

from docx import Document  # noqa: E402
from reportlab.lib.pagesizes import A4  # noqa: E402
from reportlab.pdfgen import canvas  # noqa: E402

from prepkit.analytics import db as analytics_db  # noqa: E402
from prepkit.store import db  # noqa: E402

analytics_db.init_db()


def fresh_database(name: str = "prepkit.db") -> str:
    """Point the shared connection at a new empty database file."""
    path = tempfile.mkdtemp(prefix="prepkit-db-", dir=_TMP_DIR)
    db_path = os.path.join(path, name)
    db.reset_connection(db_path)
    db.init_db()
    return db_path


class FakeAIClient:
    """Returns scripted responses in order; the last one repeats."""

    model = "fake-model"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def complete(self, messages, *, temperature, max_tokens=None):
        self.calls.append(
            {
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response, ensure_ascii=False)
        return response

    @property
    def last_user_prompt(self) -> str:
        return self.calls[-1]["messages"][-1].content

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1]["messages"][0].content


def stage(prefix: str, count: int = 2, level: str = "Senior Engineer") -> dict:
    return {
        "questions": [
            {
                "question": f"{prefix} 質問{i + 1}",
                "intent": f"{prefix} 意図{i + 1}",
                "answer_points": [f"{prefix} ポイント{i + 1}-a", f"{prefix} ポイント{i + 1}-b"],
                "level": level,
            }
            for i in range(count)
        ],
        "reverse_questions": f"{prefix} の逆質問アドバイス",
        "tech_checklist": [f"{prefix} チェック1", f"{prefix} チェック2"],
    }


def kit_payload() -> dict:
    return {
        "stage_1": stage("一次"),
        "stage_2": stage("二次"),
        "stage_3": stage("三次", count=1),
    }


def scoring_payload(score=82) -> dict:
    return {
        "score": score,
        "good_points": ["結論から話せている", "具体例がある", "数値がある"],
        "improvements": ["背景説明が長い", "学びが弱い"],
        "improvement_example": "最初に成果を述べ、その後に背景を一文で補足しましょう。",
    }


def category_block(score: int) -> dict:
    return {
        "score": score,
        "good_points": [f"良い点{score}"],
        "issues": [f"問題点{score}"],
        "suggestions": [f"提案{score}"],
        "examples": [{"before": "担当した", "after": "主導した"}],
    }


def resume_analysis_payload() -> dict:
    return {
        "summary": "バックエンド開発5年の経験を持つエンジニアの職務経歴書です。",
        "categories": {
            "structure": category_block(80),
            "content": category_block(70),
            "expression": category_block(75),
            "layout": category_block(64),
        },
        "improved_text": "■職務要約\nバックエンド開発を5年間担当。\n\n■スキル\nPython, SQL",
    }


def match_payload(score=78, rank="B") -> dict:
    return {
        "match_score": score,
        "match_rank": rank,
        "matching_points": [{"requirement": "Python", "experience": "5年", "strength": "API設計"}],
        "gap_points": [{"requirement": "Go", "gap": "経験なし", "suggestion": "個人開発で補う"}],
        "appeal_suggestions": ["API設計の実績を伝える", "チーム開発の経験を伝える"],
        "interview_tips": ["設計判断の理由を準備する", "障害対応の事例を準備する"],
        "summary": "基本的な要件は満たしていますが、Goの経験が不足しています。",
    }


def make_docx_bytes(paragraphs=("職務経歴書", "山田太郎"), table_rows=()) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table_rows:
        table = document.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def make_pdf_bytes(lines=("Resume of Taro Yamada", "Backend engineer, 5 years of Python")) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    y = 800
    for line in lines:
        pdf.drawString(40, y, line)
        y -= 20
    pdf.save()
    return buffer.getvalue()


def make_blank_pdf_bytes() -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def register(client, email: str, password: str = "secret123", name: str | None = None) -> dict:
    """Register through the API and return bearer headers for the new user."""
    response = client.post("/v1/auth/register", json={"email": email, "password": password, "name": name})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
