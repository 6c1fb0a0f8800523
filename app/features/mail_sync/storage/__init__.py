from .attachment_materializer import AttachmentMaterializer, sanitize_filename

__all__ = ["AttachmentMaterializer", "sanitize_filename"]
