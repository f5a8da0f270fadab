"""Application-wide constants: limits, formats and user-facing (Indonesian) messages."""

PAGINATION = {
    "DEFAULT_LIMIT": 50,
    "MAX_LIMIT": 100,
    "DEFAULT_OFFSET": 0,
}

BOOKING_HISTORY_LIMIT = 10
BOOKING_ID_PREFIX = "BK"
BOOKING_ID_ATTEMPTS = 3
DEFAULT_PATIENT_NOTES = "Tidak ada catatan"

BOOKING_SORT_FIELDS = {
    "created_at",
    "appointment_date",
    "appointment_datetime",
    "patient_name",
    "status",
    "total_price",
}

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BOOKING_DAYS_AHEAD = 365
MAX_STRING_LENGTH = 255

AUTH_COOKIE_NAME = "auth_token"

# Unique constraint guarding one booking per (phone, date); see supabase/migrations
BOOKING_PHONE_DATE_CONSTRAINT = "bookings_phone_date_key"
BOOKING_PRIMARY_KEY_CONSTRAINT = "bookings_pkey"

ERROR_MESSAGES = {
    "INTERNAL_SERVER_ERROR": "Terjadi kesalahan pada server",
    "INVALID_REQUEST": "Permintaan tidak valid",
    "NOT_FOUND": "API endpoint tidak ditemukan",

    "TOKEN_MISSING": "Token autentikasi tidak ditemukan. Silakan login kembali.",
    "TOKEN_EXPIRED": "Token sudah expired. Silakan login kembali.",
    "TOKEN_INVALID": "Token tidak valid. Silakan login kembali.",
    "AUTH_ERROR": "Terjadi kesalahan saat autentikasi",
    "FORBIDDEN": "Akses ditolak. Hanya admin yang dapat mengakses resource ini.",
    "CREDENTIALS_REQUIRED": "Username dan password harus diisi",
    "INVALID_CREDENTIALS": "Username atau password salah",

    "INCOMPLETE_DATA": "Data tidak lengkap. Mohon isi semua field yang diperlukan.",
    "INVALID_PHONE": "Format nomor telepon tidak valid. Gunakan format: 08xxxxxxxxxx atau +628xxxxxxxxxx",
    "INVALID_DATE": "Tanggal appointment tidak valid. Tanggal harus hari ini atau di masa depan, dan dalam 1 tahun.",
    "INVALID_TIME": "Format jam tidak valid. Gunakan format HH:MM",
    "SERVICES_REQUIRED": "Minimal satu layanan harus dipilih",
    "INVALID_SERVICE_ITEM": "Data layanan tidak valid. Setiap layanan harus memiliki id, name, dan price",
    "INVALID_STATUS": "Status tidak valid",
    "INVALID_SORT_FIELD": "Kolom pengurutan tidak valid",
    "INVALID_SERVICE_ID": "Format ID layanan tidak valid",

    "BOOKING_NOT_FOUND": "Booking tidak ditemukan",
    "DUPLICATE_BOOKING": "Anda sudah memiliki booking untuk tanggal yang sama. Silakan pilih tanggal lain.",
    "INVALID_STATUS_TRANSITION": "Perubahan status booking tidak diizinkan",
    "STATUS_CHANGED": "Status booking telah berubah. Silakan muat ulang data.",
    "BOOKING_LOCKED": "Booking yang sudah selesai atau dibatalkan tidak dapat dijadwalkan ulang",
    "RESCHEDULE_FIELDS_REQUIRED": "Tanggal, jam, dan nomor telepon harus diisi",
    "BOOKING_ACCESS_DENIED": "Anda tidak memiliki akses untuk booking ini",

    "SERVICE_NOT_FOUND": "Layanan tidak ditemukan",

    "PHONE_REQUIRED": "Nomor telepon diperlukan",
    "NOTIFICATION_NOT_FOUND": "Notifikasi tidak ditemukan",
    "NOTIFICATION_ACCESS_DENIED": "Anda tidak memiliki akses untuk notifikasi ini",
    "INVALID_NOTIFICATION_TYPE": "Tipe notifikasi tidak valid",
    "INVALID_NOTIFICATION_ID": "Format ID notifikasi tidak valid",

    "RATE_LIMIT_EXCEEDED": "Terlalu banyak request dari IP ini, silakan coba lagi setelah {window}",
    "AUTH_RATE_LIMIT": "Terlalu banyak percobaan login. Silakan coba lagi setelah {window}",
    "BOOKING_RATE_LIMIT": "Terlalu banyak booking dari IP ini. Silakan coba lagi setelah {window}",
}

SUCCESS_MESSAGES = {
    "BOOKING_CREATED": "Booking berhasil dibuat",
    "BOOKING_STATUS_UPDATED": "Status booking berhasil diupdate",
    "BOOKING_RESCHEDULED": "Booking berhasil dijadwalkan ulang",
    "BOOKING_DELETED": "Booking berhasil dihapus",
    "LOGIN_SUCCESS": "Login berhasil",
    "LOGOUT_SUCCESS": "Logout berhasil",
    "SERVICE_DELETED": "Layanan berhasil dihapus",
    "NOTIFICATION_READ": "Notifikasi ditandai sebagai dibaca",
    "NOTIFICATIONS_READ": "Semua notifikasi ditandai sebagai dibaca",
    "NOTIFICATION_DELETED": "Notifikasi berhasil dihapus",
    "NOTIFICATION_CREATED": "Notifikasi berhasil dibuat",
}

# Patient-facing notification copy per booking status
STATUS_NOTIFICATIONS = {
    "confirmed": ("Booking Dikonfirmasi", "Booking {booking_id} pada {date} pukul {time} telah dikonfirmasi."),
    "completed": ("Booking Selesai", "Terima kasih! Booking {booking_id} telah selesai."),
    "cancelled": ("Booking Dibatalkan", "Booking {booking_id} pada {date} pukul {time} telah dibatalkan."),
    "rescheduled": ("Booking Dijadwalkan Ulang", "Booking {booking_id} dipindahkan ke {date} pukul {time}."),
}
