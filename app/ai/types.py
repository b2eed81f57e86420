from typing import Any, Protocol, Sequence


class Rewriter(Protocol):
    def rewrite_bullets(self, bullets: Sequence[str], *, job_title: str | None = None) -> list[dict[str, Any]]: ...

    def rewrite_summary(self, summary: str, *, job_title: str | None = None) -> dict[str, Any]: ...

    def generate_cover_letter(self, resume_text: str, job_description: str, *, company: str | None = None) -> str: ...

    def improve_section(self, section: str, content: str) -> dict[str, Any]: ...
