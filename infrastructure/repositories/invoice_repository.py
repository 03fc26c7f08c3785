"""
发票仓储实现
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConflictException
from domain.invoice.entity import Invoice, InvoiceStatus
from domain.invoice.repository import InvoiceRepository
from infrastructure.models.invoice import InvoiceModel, InvoiceSequenceModel


logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SQLAlchemyInvoiceRepository(InvoiceRepository):
    """发票仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: InvoiceModel) -> Invoice:
        return Invoice(
            id=model.id,
            order_id=model.order_id,
            user_id=model.user_id,
            invoice_number=model.invoice_number,
            status=InvoiceStatus(model.status),
            currency=model.currency,
            subtotal=model.subtotal,
            tax_amount=model.tax_amount,
            shipping_amount=model.shipping_amount,
            discount_amount=model.discount_amount,
            total_amount=model.total_amount,
            billing_address=model.billing_address or {},
            line_items=model.line_items or [],
            issued_at=model.issued_at,
            due_at=model.due_at,
            voided_at=model.voided_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Invoice) -> InvoiceModel:
        return InvoiceModel(
            id=entity.id,
            order_id=entity.order_id,
            user_id=entity.user_id,
            invoice_number=entity.invoice_number,
            status=entity.status.value,
            currency=entity.currency,
            subtotal=entity.subtotal,
            tax_amount=entity.tax_amount,
            shipping_amount=entity.shipping_amount,
            discount_amount=entity.discount_amount,
            total_amount=entity.total_amount,
            billing_address=entity.billing_address,
            line_items=entity.line_items,
            issued_at=entity.issued_at,
            due_at=entity.due_at,
            voided_at=entity.voided_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, invoice: Invoice) -> Invoice:
        """创建发票；同一订单重复开票由唯一约束拦截"""
        try:
            db_invoice = self._to_model(invoice)
            self.session.add(db_invoice)
            await self.session.flush()
        except IntegrityError:
            logger.warning("invoice_create_conflict", order_id=invoice.order_id)
            raise ConflictException(
                "Invoice already exists for this order",
                context={"order_id": invoice.order_id},
            )
        logger.info(
            "invoice_created",
            invoice_id=db_invoice.id,
            order_id=db_invoice.order_id,
            invoice_number=db_invoice.invoice_number,
        )
        return self._to_entity(db_invoice)

    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        db_invoice = result.scalar_one_or_none()
        return self._to_entity(db_invoice) if db_invoice else None

    async def get_by_order_id(self, order_id: str) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        db_invoice = result.scalar_one_or_none()
        return self._to_entity(db_invoice) if db_invoice else None

    async def list(self, *, status: Optional[InvoiceStatus] = None, skip: int = 0, limit: int = 20) -> List[Invoice]:
        query = select(InvoiceModel)
        if status is not None:
            query = query.where(InvoiceModel.status == status.value)
        query = query.order_by(InvoiceModel.issued_at.desc(), InvoiceModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, *, status: Optional[InvoiceStatus] = None) -> int:
        query = select(func.count(InvoiceModel.id))
        if status is not None:
            query = query.where(InvoiceModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def next_sequence(self, year: int) -> int:
        """原子地获取某年的下一个发票序号

        PostgreSQL / SQLite 使用 INSERT ... ON CONFLICT DO UPDATE ... RETURNING 单语句完成；
        其他方言先条件自增，不存在时插入首条记录。
        """
        table = InvoiceSequenceModel.__table__
        dialect = self.session.get_bind().dialect.name
        upsert = _UPSERT_DIALECTS.get(dialect)
        if upsert is not None:
            stmt = (
                upsert(table)
                .values(year=year, last_value=1)
                .on_conflict_do_update(
                    index_elements=[table.c.year],
                    set_={"last_value": table.c.last_value + 1},
                )
                .returning(table.c.last_value)
            )
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

        result = await self.session.execute(
            update(table).where(table.c.year == year).values(last_value=table.c.last_value + 1)
        )
        if result.rowcount == 0:
            # 当年第一张发票；并发插入由主键约束拦截
            await self.session.execute(insert(table).values(year=year, last_value=1))
            return 1
        result = await self.session.execute(select(table.c.last_value).where(table.c.year == year))
        return int(result.scalar_one())

    async def void(self, invoice_id: str) -> bool:
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(InvoiceModel)
            .where(
                InvoiceModel.id == invoice_id,
                InvoiceModel.status == InvoiceStatus.ISSUED.value,
            )
            .values(status=InvoiceStatus.VOID.value, voided_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info("invoice_void", invoice_id=invoice_id, applied=applied)
        return applied
