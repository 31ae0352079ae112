from aurodiary.routes.diary import bp as diary_bp
from aurodiary.routes.export import bp as export_bp

__all__ = ["diary_bp", "export_bp"]
