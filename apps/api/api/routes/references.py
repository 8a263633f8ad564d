from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from apps.api.claims import (
    ClaimValidationError,
    Customer,
    Product,
    ReferenceNotFoundError,
    Supplier,
)
from apps.api.dependencies.claims import AdminUser, HandlerUser, ReferenceRegistryDep, ViewerUser

suppliers_router = APIRouter(prefix="/suppliers", tags=["references"])
products_router = APIRouter(prefix="/products", tags=["references"])
customers_router = APIRouter(prefix="/customers", tags=["references"])


class SupplierModel(BaseModel):
    id: str
    name: str
    short_code: str
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    warranty_months: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, supplier: Supplier) -> "SupplierModel":
        return cls(
            id=supplier.id,
            name=supplier.name,
            short_code=supplier.short_code,
            email=supplier.email,
            phone=supplier.phone,
            contact_person=supplier.contact_person,
            warranty_months=supplier.warranty_months,
            is_active=supplier.is_active,
            created_at=supplier.created_at,
            updated_at=supplier.updated_at,
        )


class SupplierCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    short_code: str = Field(min_length=1, max_length=10)
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    warranty_months: int = Field(default=24, ge=0)


class SupplierUpdateRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    warranty_months: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class ProductModel(BaseModel):
    id: str
    supplier_id: str
    name: str
    model_number: str | None = None
    sku: str | None = None
    category: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, product: Product) -> "ProductModel":
        return cls(
            id=product.id,
            supplier_id=product.supplier_id,
            name=product.name,
            model_number=product.model_number,
            sku=product.sku,
            category=product.category,
            is_active=product.is_active,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class ProductCreateRequest(BaseModel):
    supplier_id: str
    name: str = Field(min_length=1)
    model_number: str | None = None
    sku: str | None = None
    category: str | None = None


class ProductUpdateRequest(BaseModel):
    name: str | None = None
    model_number: str | None = None
    sku: str | None = None
    category: str | None = None
    is_active: bool | None = None


class CustomerModel(BaseModel):
    id: str
    name: str
    org_number: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, customer: Customer) -> "CustomerModel":
        return cls(
            id=customer.id,
            name=customer.name,
            org_number=customer.org_number,
            email=customer.email,
            phone=customer.phone,
            contact_person=customer.contact_person,
            address=customer.address,
            postal_code=customer.postal_code,
            city=customer.city,
            is_active=customer.is_active,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class CustomerCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    org_number: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None


class CustomerUpdateRequest(BaseModel):
    name: str | None = None
    org_number: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    is_active: bool | None = None


@suppliers_router.get("", response_model=list[SupplierModel])
async def list_suppliers(
    registry: ReferenceRegistryDep,
    user: ViewerUser,
    search: str | None = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[SupplierModel]:
    suppliers = await registry.list_suppliers(search=search, limit=limit)
    return [SupplierModel.from_entity(item) for item in suppliers]


@suppliers_router.post("", response_model=SupplierModel, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    payload: SupplierCreateRequest, registry: ReferenceRegistryDep, user: AdminUser
) -> SupplierModel:
    try:
        supplier = await registry.create_supplier(**payload.model_dump())
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SupplierModel.from_entity(supplier)


@suppliers_router.get("/{supplier_id}", response_model=SupplierModel)
async def get_supplier(supplier_id: str, registry: ReferenceRegistryDep, user: ViewerUser) -> SupplierModel:
    supplier = await registry.get_supplier(supplier_id)
    if supplier is None:
        raise HTTPException(status_code=404, detail=f"Supplier {supplier_id} not found")
    return SupplierModel.from_entity(supplier)


@suppliers_router.patch("/{supplier_id}", response_model=SupplierModel)
async def update_supplier(
    supplier_id: str,
    payload: SupplierUpdateRequest,
    registry: ReferenceRegistryDep,
    user: AdminUser,
) -> SupplierModel:
    try:
        supplier = await registry.update_supplier(supplier_id, **payload.model_dump(exclude_unset=True))
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SupplierModel.from_entity(supplier)


@products_router.get("", response_model=list[ProductModel])
async def list_products(
    registry: ReferenceRegistryDep,
    user: ViewerUser,
    supplier_id: str | None = None,
    search: str | None = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[ProductModel]:
    products = await registry.list_products(supplier_id=supplier_id, search=search, limit=limit)
    return [ProductModel.from_entity(item) for item in products]


@products_router.post("", response_model=ProductModel, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreateRequest, registry: ReferenceRegistryDep, user: HandlerUser
) -> ProductModel:
    try:
        product = await registry.create_product(**payload.model_dump())
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ProductModel.from_entity(product)


@products_router.get("/{product_id}", response_model=ProductModel)
async def get_product(product_id: str, registry: ReferenceRegistryDep, user: ViewerUser) -> ProductModel:
    product = await registry.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return ProductModel.from_entity(product)


@products_router.patch("/{product_id}", response_model=ProductModel)
async def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    registry: ReferenceRegistryDep,
    user: HandlerUser,
) -> ProductModel:
    try:
        product = await registry.update_product(product_id, **payload.model_dump(exclude_unset=True))
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ProductModel.from_entity(product)


@customers_router.get("", response_model=list[CustomerModel])
async def list_customers(
    registry: ReferenceRegistryDep,
    user: ViewerUser,
    search: str | None = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[CustomerModel]:
    customers = await registry.list_customers(search=search, limit=limit)
    return [CustomerModel.from_entity(item) for item in customers]


@customers_router.post("", response_model=CustomerModel, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreateRequest, registry: ReferenceRegistryDep, user: HandlerUser
) -> CustomerModel:
    customer = await registry.create_customer(**payload.model_dump())
    return CustomerModel.from_entity(customer)


@customers_router.get("/{customer_id}", response_model=CustomerModel)
async def get_customer(customer_id: str, registry: ReferenceRegistryDep, user: ViewerUser) -> CustomerModel:
    customer = await registry.get_customer(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    return CustomerModel.from_entity(customer)


@customers_router.patch("/{customer_id}", response_model=CustomerModel)
async def update_customer(
    customer_id: str,
    payload: CustomerUpdateRequest,
    registry: ReferenceRegistryDep,
    user: HandlerUser,
) -> CustomerModel:
    try:
        customer = await registry.update_customer(customer_id, **payload.model_dump(exclude_unset=True))
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CustomerModel.from_entity(customer)
