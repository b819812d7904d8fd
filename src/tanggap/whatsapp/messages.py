"""Indonesian WhatsApp reply templates."""

from datetime import datetime

import pytz

from tanggap.db.models import Report, ReportStatus, Urgency, as_utc, now_utc

REPORT_TYPE_LABELS = {
    "KORBAN": "Korban (Meninggal/Hilang/Luka)",
    "KEBUTUHAN": "Kebutuhan Bantuan",
}

URGENCY_LABELS = {
    "CRITICAL": "🚨 KRITIS - Tindakan segera!",
    "HIGH": "🔴 TINGGI - Tindakan dalam hitungan jam",
    "MEDIUM": "🟡 SEDANG",
    "LOW": "🟢 RENDAH",
}

STATUS_MESSAGES = {
    "VERIFIED": "✅ Laporan Anda telah diverifikasi oleh tim kami.",
    "ASSIGNED": "👷 Laporan telah ditugaskan ke relawan di lapangan.",
    "IN_PROGRESS": "🚑 Laporan sedang ditangani.",
    "RESOLVED": "🎉 Laporan Anda telah selesai ditangani. Terima kasih atas laporannya.",
    "CLOSED": "📁 Laporan telah ditutup.",
}

ERROR_MESSAGES = {
    "general": (
        "❌ Maaf, terjadi kesalahan sistem. Tim kami telah diberitahu. "
        "Silakan coba lagi dalam beberapa menit atau hubungi admin."
    ),
    "ai_timeout": (
        "⏳ Maaf, sistem sedang sibuk. Laporan Anda sudah kami terima dan akan "
        "diproses segera. Mohon tunggu konfirmasi."
    ),
    "invalid_format": (
        "❓ Maaf, kami tidak dapat memproses pesan Anda. Pastikan Anda mengirim "
        "laporan dalam format yang jelas.\n\n"
        "Contoh:\n"
        '"Ada korban luka di Desa X"\n'
        '"Butuh bantuan makanan untuk 50 orang di Posko Y"'
    ),
}


def format_time(value: datetime | None = None, tz_name: str | None = None) -> str:
    if tz_name is None:
        from tanggap.config import settings

        tz_name = settings.timezone
    local = (as_utc(value) or now_utc()).astimezone(pytz.timezone(tz_name))
    return local.strftime("%d/%m/%Y %H:%M %Z")


def report_confirmation(report: Report) -> str:
    lines = [
        "✅ *LAPORAN DITERIMA*",
        "",
        f"ID Laporan: *{report.report_number}*",
        f"Jenis: {REPORT_TYPE_LABELS.get(report.type, report.type)}",
        f"Tingkat Urgensi: {URGENCY_LABELS.get(report.urgency, report.urgency)}",
        f"Lokasi: {report.location}",
        "",
        "📋 *Ringkasan:*",
        report.summary,
        "",
    ]

    if report.status == ReportStatus.PENDING_VERIFICATION.value:
        lines.append("⏳ Status: Menunggu verifikasi")
        lines.append("Tim kami akan menghubungi Anda segera untuk konfirmasi.")
    else:
        lines.append("✅ Status: Terverifikasi")
        if report.urgency in (Urgency.CRITICAL.value, Urgency.HIGH.value):
            lines.append(
                "Tim tanggap darurat telah diberitahu dan akan segera menindaklanjuti."
            )

    lines += [
        "",
        "Mohon standby di nomor ini untuk update lebih lanjut.",
        "",
        f"_Waktu: {format_time(report.created_at)}_",
    ]
    return "\n".join(lines)


def follow_up(question: str) -> str:
    return f"🤖 *Pertanyaan Lanjutan*\n\n{question}\n\n_Balas pesan ini untuk melengkapi data._"


def status_update(report: Report, status_message: str | None = None) -> str:
    message = status_message or STATUS_MESSAGES.get(
        report.status, f"Status laporan: {report.status}"
    )
    return (
        f"📢 *UPDATE LAPORAN #{report.report_number}*\n\n"
        f"{message}\n\n"
        f"Lokasi: {report.location}\n"
        f"_{format_time()}_"
    )


def assignment_notice(report: Report) -> str:
    return status_update(
        report,
        f"👷 Anda ditugaskan menangani laporan ini.\n\nRingkasan:\n{report.summary}",
    )


def welcome(is_verified_volunteer: bool = False) -> str:
    lines = ["👋 Selamat datang di *Sistem Tanggap Darurat Bencana*", ""]
    if is_verified_volunteer:
        lines += ["✅ Anda terdaftar sebagai relawan terverifikasi.", ""]
    lines += [
        "Anda dapat melaporkan:",
        "🆘 Korban (meninggal, hilang, luka)",
        "📦 Kebutuhan bantuan (pangan, air, medis, shelter, dll)",
        "",
        "*Cara Melapor:*",
        "Kirim pesan dengan format bebas, contoh:",
        '"Ada 3 orang terluka di Dusun Kali RT 02, butuh evakuasi segera"',
        "",
        "Sistem AI kami akan membantu mengekstrak informasi. "
        "Jika ada data yang kurang, kami akan bertanya.",
        "",
        "_Pastikan nomor ini aktif untuk menerima update._",
    ]
    return "\n".join(lines)


def error(error_type: str = "general") -> str:
    return ERROR_MESSAGES.get(error_type, ERROR_MESSAGES["general"])
