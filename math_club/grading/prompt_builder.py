"""
Prompt builder for essay grading, exam extraction and explanations.

All student-facing text is Vietnamese. The essay grading prompt asks for a
single JSON object `{"score": number, "feedback": string}`.
"""

from decimal import Decimal
from typing import Any

from math_club.grading.content import extract_inline_images, strip_html
from math_club.models import EssayGradeRequest


def format_points(points: Decimal) -> str:
    """Render points without trailing zeros (1, 0.25, 2.5)."""
    return f"{points.normalize():f}"


class PromptBuilder:
    """
    Builds the prompts sent to the completion API.

    The essay prompts are designed to:
    1. Compare the answer with the sample solution, not with a fixed format
    2. Award partial credit for partially correct work
    3. Accept alternative correct methods
    4. Produce a single, small JSON object
    """

    ESSAY_SYSTEM_PROMPT = """Bạn là giáo viên chấm bài thi toán học cấp THPT. Nhiệm vụ của bạn là chấm điểm câu trả lời tự luận của học sinh.

QUY TẮC CHẤM ĐIỂM:
1. Đọc kỹ câu trả lời của học sinh (có thể là text hoặc hình ảnh bài làm)
2. So sánh với đáp án mẫu - kiểm tra tính đúng đắn của phương pháp và kết quả
3. Cho điểm từng phần nếu học sinh làm đúng một phần
4. Nếu học sinh có cách giải khác nhưng đúng, vẫn cho điểm đầy đủ
5. Chỉ trừ điểm nếu có sai sót thực sự về tính toán hoặc lập luận

QUAN TRỌNG VỚI BÀI LÀM BẰNG HÌNH ẢNH:
- Đọc cẩn thận nội dung trong hình ảnh
- Kiểm tra từng bước giải, công thức, và kết quả cuối cùng
- Nếu kết quả đúng với đáp án mẫu, cho điểm đầy đủ
- Đừng trừ điểm chỉ vì format khác với đáp án mẫu

ĐỊNH DẠNG TRẢ LỜI (JSON):
{{
  "score": <số điểm từ 0 đến {max_points}>,
  "feedback": "<nhận xét ngắn gọn bằng tiếng Việt>"
}}"""

    EXTRACTION_SYSTEM_PROMPT = """You are a Vietnamese math exam analyzer. Extract questions and answers from exam text.

=== STRUCTURE OF VIETNAMESE EXAMS ===
1. "ĐỀ THI" / "ĐỀ KIỂM TRA" - Exam questions (first pages)
2. "HƯỚNG DẪN CHẤM" / "ĐÁP ÁN" - Answer key (last pages)

=== CRITICAL RULES ===
- Extract answers ONLY from the "HƯỚNG DẪN CHẤM" section - NEVER make up answers
- If no answer exists in the document for a question, use empty string ""

=== QUESTION TYPES ===
- "multiple-choice": Options A, B, C, D -> correctAnswer is index 0-3
- "true-false": Statements a, b, c, d with Đ/S -> use the subQuestions array
- "fill-in": Short answer -> correctAnswer is the answer string
- "essay": Long answer -> sampleAnswer is the full solution from the answer key

=== FOR ESSAY QUESTIONS ===
- "sampleAnswer": the COMPLETE solution from "HƯỚNG DẪN CHẤM"
- "explanation": leave EMPTY ""
- "rubric": leave EMPTY "" unless there is an EXPLICIT point breakdown like "a) 0.5đ, b) 0.5đ"

=== MATH FORMATTING ===
Wrap ALL math in $...$: $\\frac{1}{3}$, $x^2$, $(-\\infty; 0)$

=== JSON OUTPUT ===
{
  "questions": [{
    "question": "Question text with $LaTeX$",
    "type": "multiple-choice|true-false|fill-in|essay",
    "options": ["A. ...", "B. ...", "C. ...", "D. ..."],
    "correctAnswer": 0,
    "explanation": "For MC/TF/fill-in: solution from answer key. For essay: empty string",
    "points": 0.25,
    "subQuestions": [{"label": "a", "content": "statement", "correct": true}],
    "sampleAnswer": "For essay only: full solution from HƯỚNG DẪN CHẤM",
    "rubric": "Only if explicit point breakdown exists, otherwise empty",
    "imageDescription": "Vietnamese description of any figure or graph"
  }]
}

=== RULES ===
- Process the WHOLE document including the answer key at the end
- Use <br> for line breaks
- Use exact point values from the exam"""

    EXPLAIN_SYSTEM_PROMPT = """Bạn là một trợ lý giáo dục AI chuyên về toán học cấp 3 (lớp 10-12) tại Việt Nam.
{context}
NHIỆM VỤ CỦA BẠN:
1. Giải thích chi tiết câu hỏi và phương pháp giải
2. Nếu học sinh trả lời sai, giải thích tại sao câu trả lời của họ không đúng
3. Gợi ý các khái niệm, công thức cần nhớ
4. Đề xuất các nguồn tài liệu tham khảo phù hợp (sách giáo khoa, bài giảng online, video học tập)
5. Khuyến khích học sinh với giọng điệu thân thiện và động viên

QUAN TRỌNG - FORMAT CÔNG THỨC TOÁN HỌC:
- LUÔN sử dụng dấu $ để bao quanh công thức toán: $công thức$
- Ví dụ đúng: $A = \\{{1, 2, 3\\}}$, $x^2 - 5x + 6 = 0$, $A \\cap B$
- Với công thức dài hoặc riêng biệt, dùng $$công thức$$

HÃY TRẢ LỜI BẰNG TIẾNG VIỆT, RÕ RÀNG VÀ DỄ HIỂU. LUÔN DÙNG $ CHO CÔNG THỨC TOÁN."""

    @staticmethod
    def get_essay_system_prompt(max_points: Decimal) -> str:
        """System prompt for grading one essay worth `max_points`."""
        return PromptBuilder.ESSAY_SYSTEM_PROMPT.format(max_points=format_points(max_points))

    @staticmethod
    def build_essay_prompt(request: EssayGradeRequest) -> str:
        """
        Build the user prompt for grading an essay answer.

        Args:
            request: The essay grading request.

        Returns:
            The formatted user prompt.
        """
        sample = strip_html(request.sample_answer) or "(Không có đáp án mẫu)"
        rubric = (
            strip_html(request.rubric)
            if request.rubric
            else "(Không có thang điểm chi tiết - chấm theo mức độ hoàn thành)"
        )
        student_text = strip_html(request.student_answer) or "(Xem hình ảnh đính kèm)"

        return f"""CÂU HỎI:
{strip_html(request.question_text)}

ĐÁP ÁN MẪU:
{sample}

THANG ĐIỂM: Tổng {format_points(request.max_points)} điểm
{rubric}

CÂU TRẢ LỜI CỦA HỌC SINH:
{student_text}

Hãy chấm điểm câu trả lời trên. Nếu học sinh nộp bài bằng hình ảnh, hãy đọc kỹ nội dung trong ảnh."""

    @staticmethod
    def build_essay_content(request: EssayGradeRequest) -> list[dict[str, Any]]:
        """User message content parts: the prompt text plus any inline images."""
        parts: list[dict[str, Any]] = [
            {"type": "text", "text": PromptBuilder.build_essay_prompt(request)}
        ]
        for image in extract_inline_images(request.student_answer):
            parts.append({"type": "image_url", "image_url": {"url": image, "detail": "high"}})
        return parts

    @staticmethod
    def build_extraction_prompt(document_text: str) -> str:
        """User prompt asking for every question of an exam document."""
        return f"""Extract ALL questions from the exam below.

INSTRUCTIONS:
1. Read the whole document - questions come first, the answer key ("HƯỚNG DẪN CHẤM") is at the end
2. For each question, find its answer in the answer key section
3. For ESSAY questions: put the full solution in "sampleAnswer", leave "explanation" and "rubric" empty
4. DO NOT make up any answers - only extract what's in the document

---BEGIN EXAM---
{document_text}
---END EXAM---

Return ONLY the JSON object."""

    @staticmethod
    def build_explain_system_prompt(
        question: str | None = None,
        correct_answer: str | None = None,
        explanation: str | None = None,
        user_answer: str | None = None,
    ) -> str:
        """Tutoring system prompt, optionally grounded in one question."""
        context = ""
        if question:
            lines = [
                "",
                "NGỮ CẢNH CÂU HỎI:",
                f"Câu hỏi: {question}",
                f"Đáp án đúng: {correct_answer or ''}",
                f"Giải thích: {explanation or ''}",
            ]
            if user_answer:
                lines.append(f"Câu trả lời của học sinh: {user_answer}")
            context = "\n".join(lines) + "\n"
        return PromptBuilder.EXPLAIN_SYSTEM_PROMPT.format(context=context)
