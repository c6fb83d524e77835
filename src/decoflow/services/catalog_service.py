from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from decoflow.domain.errors import NotFoundError, ValidationError
from decoflow.domain.ids import new_id, now_iso
from decoflow.domain.images import record_image_refs
from decoflow.domain.models import Product, Section, SectionSummary
from decoflow.repositories.blob_store import reference_key

log = logging.getLogger(__name__)


def _clean_name(name: str, what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required.")
    return name


def _check_price(value: Optional[float], label: str) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if value < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return value


class CatalogService:
    def __init__(self, repo, blobs):
        self.repo = repo
        self.blobs = blobs

    def _drop_replaced(self, old_refs, new_refs) -> None:
        keep = {reference_key(r) for r in new_refs}
        self.blobs.delete_images(r for r in old_refs if reference_key(r) not in keep)

    # ---------- Sections ----------
    def list_sections(self) -> list[SectionSummary]:
        return self.repo.list_sections()

    def get_section(self, section_id: str) -> Section:
        s = self.repo.get_section(section_id)
        if not s:
            raise NotFoundError("Section not found.")
        return s

    def create_section(
        self, name: str, color: str | None = None, icon: str | None = None, image: str | None = None
    ) -> Section:
        now = now_iso()
        section = Section(
            id=new_id(),
            name=_clean_name(name, "Section"),
            color=color,
            icon=icon,
            image=self.blobs.adopt(image),
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_section(section)

    def update_section(
        self, section_id: str, name: str, color: str | None = None, icon: str | None = None, image: str | None = None
    ) -> Section:
        current = self.get_section(section_id)
        updated = replace(
            current,
            name=_clean_name(name, "Section"),
            color=color,
            icon=icon,
            image=self.blobs.adopt(image, owned=[current.image]),
            updated_at=now_iso(),
        )
        if not self.repo.update_section(updated):
            raise NotFoundError("Section not found.")
        self._drop_replaced([current.image], [updated.image])
        return updated

    def delete_section(self, section_id: str) -> None:
        section = self.get_section(section_id)
        refs = list(record_image_refs(section))
        for p in self.repo.list_products_by_section(section_id):
            refs.extend(record_image_refs(p))

        # files go first; a crash before the row delete only leaves orphans for GC
        self.blobs.delete_images(refs)
        self.repo.delete_section(section_id)
        log.info("section_deleted id=%s images=%s", section_id, len(refs))

    def duplicate_section(self, section_id: str) -> Section:
        source = self.get_section(section_id)
        now = now_iso()
        copy = replace(
            source,
            id=new_id(),
            name=f"{source.name} (copia)",
            image=self.blobs.duplicate(source.image) if self.blobs.check_exists(source.image) else None,
            created_at=now,
            updated_at=now,
        )
        self.repo.create_section(copy)
        for p in self.repo.list_products_by_section(section_id):
            self._copy_product(p, copy.id, p.name)
        return copy

    # ---------- Products ----------
    def list_products(self, section_id: str | None = None) -> list[Product]:
        if section_id:
            return self.repo.list_products_by_section(section_id)
        return self.repo.list_products()

    def search_products(self, query: str) -> list[Product]:
        if not (query or "").strip():
            return []
        return self.repo.search_products(query)

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product(product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def create_product(
        self,
        section_id: str,
        name: str,
        description: str | None = None,
        price: float | None = None,
        rent_price: float | None = None,
        image: str | None = None,
        image_secondary1: str | None = None,
        image_secondary2: str | None = None,
    ) -> Product:
        self.get_section(section_id)
        now = now_iso()
        product = Product(
            id=new_id(),
            section_id=section_id,
            name=_clean_name(name, "Product"),
            description=description,
            price=_check_price(price, "Price"),
            rent_price=_check_price(rent_price, "Rent price"),
            image=self.blobs.adopt(image),
            image_secondary1=self.blobs.adopt(image_secondary1),
            image_secondary2=self.blobs.adopt(image_secondary2),
            created_at=now,
            updated_at=now,
        )
        self.repo.create_product(product)
        self.repo.touch_section(section_id, now)
        return product

    def update_product(
        self,
        product_id: str,
        name: str,
        description: str | None = None,
        price: float | None = None,
        rent_price: float | None = None,
        image: str | None = None,
        image_secondary1: str | None = None,
        image_secondary2: str | None = None,
    ) -> Product:
        current = self.get_product(product_id)
        owned = list(record_image_refs(current))
        now = now_iso()
        updated = replace(
            current,
            name=_clean_name(name, "Product"),
            description=description,
            price=_check_price(price, "Price"),
            rent_price=_check_price(rent_price, "Rent price"),
            image=self.blobs.adopt(image, owned),
            image_secondary1=self.blobs.adopt(image_secondary1, owned),
            image_secondary2=self.blobs.adopt(image_secondary2, owned),
            updated_at=now,
        )
        if not self.repo.update_product(updated):
            raise NotFoundError("Product not found.")
        self._drop_replaced(owned, record_image_refs(updated))
        self.repo.touch_section(updated.section_id, now)
        return updated

    def delete_product(self, product_id: str) -> None:
        product = self.get_product(product_id)
        self.blobs.delete_images(record_image_refs(product))
        self.repo.delete_product(product_id)
        self.repo.touch_section(product.section_id, now_iso())

    def _copy_product(self, source: Product, section_id: str, name: str) -> Product:
        def dup(ref):
            return self.blobs.duplicate(ref) if self.blobs.check_exists(ref) else None

        now = now_iso()
        copy = replace(
            source,
            id=new_id(),
            section_id=section_id,
            name=name,
            image=dup(source.image),
            image_secondary1=dup(source.image_secondary1),
            image_secondary2=dup(source.image_secondary2),
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_product(copy)

    def duplicate_product(self, product_id: str) -> Product:
        source = self.get_product(product_id)
        copy = self._copy_product(source, source.section_id, f"{source.name} (copia)")
        self.repo.touch_section(source.section_id, copy.created_at)
        return copy

    def product_stats(self, product_id: str, start_date: str | None = None, end_date: str | None = None):
        self.get_product(product_id)
        return self.repo.product_income(product_id, start_date, end_date)
