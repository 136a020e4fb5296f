from typing import Any, Dict, Optional


def _money(value: Any) -> float:
    return float(value or 0)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_order_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "kode_pesanan": row.kode_pesanan,
        "id_pembeli": row.id_pembeli,
        "id_penjual": row.id_penjual,
        "items": [
            {
                "id_produk": it["id_produk"],
                "nama_produk": it["nama_produk"],
                "harga_satuan": _money(it["harga_satuan"]),
                "jumlah": int(it["jumlah"]),
                "subtotal": _money(it["subtotal"]),
            }
            for it in (row.items or [])
        ],
        "total_harga_produk": _money(row.total_harga_produk),
        "ongkir": _money(row.ongkir),
        "biaya_admin": _money(row.biaya_admin),
        "id_promosi": row.id_promosi,
        "diskon": _money(row.diskon),
        "total_bayar": _money(row.total_bayar),
        "alamat_pengiriman": row.alamat_pengiriman,
        "kurir": row.kurir,
        "resi": row.resi,
        "status_pesanan": row.status_pesanan,
        "catatan_pembeli": row.catatan_pembeli,
        "alasan_batal": row.alasan_batal,
        "tanggal_bayar": _iso(row.tanggal_bayar),
        "tanggal_kirim": _iso(row.tanggal_kirim),
        "tanggal_selesai": _iso(row.tanggal_selesai),
        "stok_dikurangi": bool(row.stok_dikurangi),
        "created_at": _iso(row.created_at),
    }


def to_payment_dto(row: Any) -> Optional[Dict]:
    if row is None:
        return None
    return {
        "id": row.id,
        "id_pesanan": row.id_pesanan,
        "metode_pembayaran": row.metode_pembayaran,
        "saluran_pembayaran": row.saluran_pembayaran,
        "midtrans_order_id": row.midtrans_order_id,
        "snap_token": row.midtrans_snap_token,
        "payment_url": row.midtrans_payment_url,
        "reference_number": row.reference_number,
        "jumlah": _money(row.jumlah),
        "status_payment": row.status_payment,
        "percobaan": row.percobaan,
        "expired_at": _iso(row.expired_at),
        "paid_at": _iso(row.paid_at),
    }
