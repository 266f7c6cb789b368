"""
Product image set — one row per generation session.
"""

from sqlalchemy import Boolean, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class ProductImageSet(TenantBase):
    __tablename__ = "product_image_sets"
    __mapper_args__ = {"eager_defaults": True}

    session_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=True)
    original_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    background_type: Mapped[str] = mapped_column(String, nullable=False, default="studio")
    camera_angles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    output_size: Mapped[str] = mapped_column(String, nullable=False, default="1:1")
    use_logo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    logo_position: Mapped[str] = mapped_column(String, nullable=False, default="bottom-right")
    additional_notes: Mapped[str] = mapped_column(Text, nullable=True)
    # Full request as submitted, used to regenerate.
    request_params: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # [{angle, imageUrl, status, errorMessage}, ...] in generation order
    generated_images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    generated_image_url: Mapped[str] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="processing")
    error_message: Mapped[str] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "title": self.title,
            "originalImageUrl": self.original_image_url,
            "backgroundType": self.background_type,
            "cameraAngles": self.camera_angles or [],
            "outputSize": self.output_size,
            "useLogo": self.use_logo,
            "logoPosition": self.logo_position,
            "additionalNotes": self.additional_notes or "",
            "generatedImages": self.generated_images or [],
            "generatedImageUrl": self.generated_image_url or "",
            "status": self.status,
            "errorMessage": self.error_message or "",
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
