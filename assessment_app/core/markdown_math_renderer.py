"""Markdown + LaTeX rendering of questions for preview and the student page.

Prompts, alternatives and feedback are authored as markdown with inline
``$...$`` math. The renderer produces plain HTML and leaves the math to
MathJax in the browser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from markdown_it import MarkdownIt

from assessment_app.constants.grading_constants import FALSE_LABEL, TRUE_LABEL
from assessment_app.core.models import FreeResponseKey, MultipleChoiceKey, Question, TrueFalseKey

_MATHJAX_SCRIPT = (
    "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
)


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math questions into HTML fragments or documents."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = markdown_text.strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        return self._markdown.renderInline(markdown_text.strip())

    def render_question(self, question: Question, include_solution: bool = False) -> str:
        """Render the prompt and response options of a question.

        With ``include_solution`` the correct option is marked and the
        feedback and rubric are appended, as in the author's preview.
        """
        parts = [f'<div class="prompt">{self.render_fragment(question.prompt)}</div>']
        key = question.key
        if isinstance(key, MultipleChoiceKey):
            items = []
            for alternative in key.alternatives:
                css = ' class="correct"' if include_solution and alternative.is_correct else ""
                items.append(
                    f'<li{css} data-id="{escape(alternative.id)}">'
                    f"<strong>{escape(alternative.id)}.</strong> {self.render_inline(alternative.text)}</li>"
                )
            parts.append(f'<ol class="alternatives">{"".join(items)}</ol>')
        elif isinstance(key, TrueFalseKey):
            items = []
            for label in (TRUE_LABEL, FALSE_LABEL):
                css = ' class="correct"' if include_solution and label == key.correct_label else ""
                items.append(f'<li{css} data-id="{label}">{label}</li>')
            parts.append(f'<ul class="alternatives">{"".join(items)}</ul>')
        elif isinstance(key, FreeResponseKey) and include_solution and key.rubric:
            rows = "".join(
                f"<tr><td>{escape(c.criterion)}</td><td>{c.max_points:g}</td><td>{escape(c.descriptor)}</td></tr>"
                for c in key.rubric
            )
            parts.append(f'<table class="rubric">{rows}</table>')

        if include_solution:
            if question.feedback_correct:
                parts.append(f'<div class="feedback correct">{self.render_fragment(question.feedback_correct)}</div>')
            if question.feedback_incorrect:
                parts.append(
                    f'<div class="feedback incorrect">{self.render_fragment(question.feedback_incorrect)}</div>'
                )
        return "\n".join(parts)

    def wrap_with_mathjax(self, body_html: str, title: str = "Assessment") -> str:
        """Wrap a fragment inside a minimal HTML document that loads MathJax."""

        return f"""<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>{escape(title)}</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <style>
      body {{ font-family: system-ui, sans-serif; margin: 0; padding: 1rem; }}
      .question-html {{ font-size: 1.1rem; line-height: 1.5; }}
      .correct {{ font-weight: bold; }}
      .feedback {{ margin-top: 0.75rem; padding: 0.5rem; border-left: 3px solid #888; }}
    </style>
    <script>
      window.MathJax = {{ tex: {{ inlineMath: [['$','$']], displayMath: [['$$','$$']] }}, svg: {{ fontCache: 'global' }} }};
    </script>
    <script defer src=\"{_MATHJAX_SCRIPT}\"></script>
  </head>
  <body>
    <div class=\"question-html\">{body_html}</div>
  </body>
</html>"""

    def render_question_document(self, question: Question, include_solution: bool = False) -> str:
        fragment = self.render_question(question, include_solution=include_solution)
        return self.wrap_with_mathjax(fragment, title=question.code or "Question preview")


# MarkdownIt renders are read-only, so one instance is shared by the API.
renderer = MarkdownMathRenderer()
