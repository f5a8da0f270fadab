import re
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from app.core.config import settings
from app.core.exceptions import DatabaseError, UniqueViolationError
from app.core.logger import logger

BOOKING_WITH_ITEMS = "*, booking_services(*)"
BOOKING_CHECK_COLUMNS = (
    "id, patient_name, patient_phone, appointment_date, appointment_time, status, "
    "booking_services(service_name, service_price)"
)
BOOKING_HISTORY_COLUMNS = (
    "id, patient_name, appointment_date, appointment_time, status, created_at, "
    "booking_services(service_name, service_price)"
)
CATEGORY_WITH_SERVICES = (
    "id, name, description, icon, display_order, is_active, "
    "services:services(id, name, description, base_price, category_id, display_order, is_active, created_at, updated_at)"
)
SERVICE_WITH_CATEGORY = "*, service_categories(id, name, description, icon)"

_CONSTRAINT_RE = re.compile(r'constraint "([^"]+)"')


class DBService:
    _instance = None
    _client: Optional[AsyncClient] = None
    _admin_client: Optional[AsyncClient] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
        return cls._instance

    async def get_client(self) -> AsyncClient:
        if not self._client:
            self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
            logger.info("✅ Supabase Async client initialized")
        return self._client

    async def get_admin_client(self) -> AsyncClient:
        """Service-role client for admin writes; falls back to the anon client."""
        if not settings.SUPABASE_SERVICE_ROLE_KEY:
            return await self.get_client()
        if not self._admin_client:
            self._admin_client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
            logger.info("✅ Supabase Async admin client initialized")
        return self._admin_client

    async def _execute(self, query, operation: str):
        try:
            return await query.execute()
        except APIError as e:
            raise self._translate(e, operation) from e

    @staticmethod
    def _translate(error: APIError, operation: str) -> DatabaseError:
        context = {
            "operation": operation,
            "code": error.code,
            "message": error.message,
            "details": error.details,
        }
        if error.code == "23505":
            match = _CONSTRAINT_RE.search(f"{error.message or ''} {error.details or ''}")
            constraint = match.group(1) if match else None
            logger.warning(f"⚠️ Unique violation ({operation}) on {constraint}")
            return UniqueViolationError(constraint=constraint, context=context)
        logger.error(f"❌ DB Error ({operation}): {error.message} [code={error.code}]")
        return DatabaseError(context=context)

    @staticmethod
    def _first(response) -> Optional[Dict[str, Any]]:
        return response.data[0] if response.data else None

    # --- Bookings ---

    async def list_bookings(
        self,
        status: Optional[str],
        date: Optional[str],
        limit: int,
        offset: int,
        sort_by: str,
        sort_order: str,
    ) -> Tuple[List[Dict[str, Any]], int]:
        client = await self.get_client()
        query = (
            client.table("bookings")
            .select(BOOKING_WITH_ITEMS, count="exact")
            .order(sort_by, desc=sort_order != "asc")
            .range(offset, offset + limit - 1)
        )
        if status:
            query = query.eq("status", status)
        if date:
            query = query.eq("appointment_date", date)

        response = await self._execute(query, "list_bookings")
        return response.data or [], response.count or 0

    async def get_booking(self, booking_id: str, columns: str = BOOKING_WITH_ITEMS) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("bookings").select(columns).eq("id", booking_id).limit(1),
            "get_booking",
        )
        return self._first(response)

    async def find_booking_on_date(
        self, phone: str, date: str, exclude_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Any booking for (phone, date), whatever its status, optionally ignoring one booking id."""
        client = await self.get_client()
        query = (
            client.table("bookings")
            .select("id")
            .eq("patient_phone", phone)
            .eq("appointment_date", date)
        )
        if exclude_id:
            query = query.neq("id", exclude_id)
        response = await self._execute(query.limit(1), "find_booking_on_date")
        return self._first(response)

    async def get_booking_history(self, phone: str, limit: int) -> List[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("bookings")
            .select(BOOKING_HISTORY_COLUMNS)
            .eq("patient_phone", phone)
            .order("created_at", desc=True)
            .limit(limit),
            "get_booking_history",
        )
        return response.data or []

    async def create_booking_with_services(self, booking: Dict[str, Any], services: List[Dict[str, Any]]) -> str:
        """
        Inserts the booking and its line items in one transaction
        (Postgres function create_booking_with_services). Returns the booking id.
        """
        client = await self.get_client()
        response = await self._execute(
            client.rpc("create_booking_with_services", {"p_booking": booking, "p_services": services}),
            "create_booking_with_services",
        )
        logger.info(f"✅ Booking {booking['id']} written with {len(services)} service(s)")
        return response.data or booking["id"]

    async def update_booking(
        self,
        booking_id: str,
        data: Dict[str, Any],
        expected_status: Optional[str] = None,
        admin: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Returns the updated row, or None when no row matched (missing id or status changed)."""
        client = await (self.get_admin_client() if admin else self.get_client())
        query = client.table("bookings").update(data).eq("id", booking_id)
        if expected_status:
            query = query.eq("status", expected_status)
        response = await self._execute(query, "update_booking")
        return self._first(response)

    async def delete_booking(self, booking_id: str) -> bool:
        client = await self.get_admin_client()
        response = await self._execute(
            client.table("bookings").delete().eq("id", booking_id),
            "delete_booking",
        )
        deleted = bool(response.data)
        if deleted:
            logger.info(f"🗑️ Booking {booking_id} deleted from DB.")
        return deleted

    # --- Service catalog ---

    async def list_service_categories(self) -> List[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("service_categories")
            .select(CATEGORY_WITH_SERVICES)
            .eq("is_active", True)
            .eq("services.is_active", True)
            .order("display_order")
            .order("display_order", foreign_table="services"),
            "list_service_categories",
        )
        return response.data or []

    async def get_service(self, service_id: str) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("services").select(SERVICE_WITH_CATEGORY).eq("id", service_id).limit(1),
            "get_service",
        )
        return self._first(response)

    async def list_services_by_category(self, category_id: str) -> List[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("services")
            .select("*")
            .eq("category_id", category_id)
            .eq("is_active", True)
            .order("display_order"),
            "list_services_by_category",
        )
        return response.data or []

    async def create_service(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(client.table("services").insert(data), "create_service")
        return self._first(response)

    async def update_service(self, service_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("services").update(data).eq("id", service_id),
            "update_service",
        )
        return self._first(response)

    # --- Notifications ---

    async def list_notifications(self, phone: str, status: Optional[str], limit: int) -> List[Dict[str, Any]]:
        client = await self.get_client()
        query = (
            client.table("notifications")
            .select("*")
            .eq("user_phone", phone)
            .eq("is_deleted", False)
            .order("created_at", desc=True)
            .limit(limit)
        )
        if status == "unread":
            query = query.eq("is_read", False)
        elif status == "read":
            query = query.eq("is_read", True)
        response = await self._execute(query, "list_notifications")
        return response.data or []

    async def count_unread_notifications(self, phone: str) -> int:
        client = await self.get_client()
        response = await self._execute(
            client.rpc("get_unread_count", {"p_user_phone": phone}),
            "count_unread_notifications",
        )
        return response.data or 0

    async def get_notification(self, notification_id: str) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("notifications").select("*").eq("id", notification_id).limit(1),
            "get_notification",
        )
        return self._first(response)

    async def update_notification(self, notification_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        client = await self.get_client()
        response = await self._execute(
            client.table("notifications").update(data).eq("id", notification_id),
            "update_notification",
        )
        return self._first(response)

    async def mark_all_notifications_read(self, phone: str) -> int:
        client = await self.get_client()
        response = await self._execute(
            client.rpc("mark_all_notifications_read", {"p_user_phone": phone}),
            "mark_all_notifications_read",
        )
        return response.data or 0

    async def create_notification(
        self,
        phone: str,
        notification_type: str,
        title: str,
        message: str,
        booking_id: Optional[str] = None,
    ) -> Any:
        client = await self.get_client()
        response = await self._execute(
            client.rpc(
                "create_notification",
                {
                    "p_user_phone": phone,
                    "p_type": notification_type,
                    "p_title": title,
                    "p_message": message,
                    "p_booking_id": booking_id,
                },
            ),
            "create_notification",
        )
        return response.data

    # --- Auth ---

    async def authenticate_user(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Password is checked inside the database (authenticate_user function, pgcrypto)."""
        client = await self.get_client()
        response = await self._execute(
            client.rpc("authenticate_user", {"input_username": username, "input_password": password}),
            "authenticate_user",
        )
        return self._first(response)


db_service = DBService()
