"""
Spreadsheet export of the stock and ledger listings
"""
from io import BytesIO
from datetime import date, datetime
from typing import List, Dict, Any

import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

STOCK_COLUMNS = [
    {'field': 'id', 'header': 'Stock ID', 'width': 10},
    {'field': 'warehouse', 'header': 'Warehouse', 'width': 24},
    {'field': 'product', 'header': 'Product', 'width': 30},
    {'field': 'tracking_type', 'header': 'Tracking', 'width': 10},
    {'field': 'quantity_on_hand', 'header': 'On Hand', 'width': 12},
    {'field': 'quantity_available', 'header': 'Available', 'width': 12},
    {'field': 'min_stock_quantity', 'header': 'Min Stock', 'width': 12},
    {'field': 'low_stock', 'header': 'Low Stock', 'width': 10},
    {'field': 'last_inward_at', 'header': 'Last Inward', 'width': 20},
    {'field': 'last_outward_at', 'header': 'Last Outward', 'width': 20},
]

LEDGER_COLUMNS = [
    {'field': 'id', 'header': 'Entry ID', 'width': 10},
    {'field': 'performed_at', 'header': 'Date', 'width': 20},
    {'field': 'warehouse', 'header': 'Warehouse', 'width': 24},
    {'field': 'product', 'header': 'Product', 'width': 30},
    {'field': 'transaction_type', 'header': 'Transaction', 'width': 26},
    {'field': 'transaction_reference_no', 'header': 'Reference', 'width': 22},
    {'field': 'movement_type', 'header': 'Movement', 'width': 10},
    {'field': 'quantity', 'header': 'Qty', 'width': 8},
    {'field': 'serial_number', 'header': 'Serial', 'width': 18},
    {'field': 'opening_quantity', 'header': 'Opening', 'width': 10},
    {'field': 'closing_quantity', 'header': 'Closing', 'width': 10},
    {'field': 'rate', 'header': 'Rate', 'width': 12},
    {'field': 'amount', 'header': 'Amount', 'width': 14},
    {'field': 'reason', 'header': 'Reason', 'width': 28},
]


def stock_rows(stocks):
    return [{
        'id': s.id,
        'warehouse': s.warehouse.name if s.warehouse else s.warehouse_id,
        'product': s.product.product_name if s.product else s.product_id,
        'tracking_type': s.tracking_type,
        'quantity_on_hand': s.quantity_on_hand,
        'quantity_available': s.quantity_available,
        'min_stock_quantity': s.min_stock_quantity,
        'low_stock': 'YES' if s.low_stock else '',
        'last_inward_at': s.last_inward_at,
        'last_outward_at': s.last_outward_at,
    } for s in stocks]


def ledger_rows(entries):
    return [{
        'id': e.id,
        'performed_at': e.performed_at,
        'warehouse': e.stock.warehouse.name if e.stock and e.stock.warehouse else e.warehouse_id,
        'product': e.stock.product.product_name if e.stock and e.stock.product else e.product_id,
        'transaction_type': e.transaction_type,
        'transaction_reference_no': e.transaction_reference_no,
        'movement_type': e.movement_type,
        'quantity': e.quantity,
        'serial_number': e.serial.serial_number if e.serial else None,
        'opening_quantity': e.opening_quantity,
        'closing_quantity': e.closing_quantity,
        'rate': e.rate,
        'amount': e.amount,
        'reason': e.reason,
    } for e in entries]


class ExportService:
    """Excel export"""

    @staticmethod
    def export_to_excel(
        data: List[Dict[str, Any]],
        columns: List[Dict[str, Any]],
        sheet_name: str = "Sheet1",
        title: str = "Export"
    ) -> BytesIO:
        """
        Write rows to an .xlsx workbook.

        Args:
            data: rows as dicts keyed by column field
            columns: [{"field": ..., "header": ..., "width": ...}, ...]
            sheet_name: worksheet name
            title: banner across the first row

        Returns:
            BytesIO positioned at 0
        """
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = sheet_name

        title_font = Font(size=14, bold=True, color='FFFFFF')
        title_fill = PatternFill(start_color='F59E0B', end_color='F59E0B', fill_type='solid')
        header_font = Font(size=11, bold=True, color='FFFFFF')
        header_fill = PatternFill(start_color='0F766E', end_color='0F766E', fill_type='solid')
        border = Border(
            left=Side(style='thin', color='E5E7EB'),
            right=Side(style='thin', color='E5E7EB'),
            top=Side(style='thin', color='E5E7EB'),
            bottom=Side(style='thin', color='E5E7EB')
        )

        # Title and export time span every column
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
        title_cell = ws.cell(row=1, column=1, value=title)
        title_cell.font = title_font
        title_cell.fill = title_fill
        title_cell.alignment = Alignment(horizontal='center', vertical='center')
        ws.row_dimensions[1].height = 28

        ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(columns))
        time_cell = ws.cell(row=2, column=1, value=f"Exported at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        time_cell.font = Font(size=9, color='6B7280')
        time_cell.alignment = Alignment(horizontal='center')

        for col_idx, col_def in enumerate(columns, start=1):
            cell = ws.cell(row=3, column=col_idx, value=col_def['header'])
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = border
            ws.column_dimensions[get_column_letter(col_idx)].width = col_def.get('width', 15)

        for row_idx, row_data in enumerate(data, start=4):
            for col_idx, col_def in enumerate(columns, start=1):
                value = row_data.get(col_def['field'], '')
                if isinstance(value, datetime):
                    value = value.strftime('%Y-%m-%d %H:%M:%S')
                elif isinstance(value, date):
                    value = value.isoformat()
                elif value is None:
                    value = ''

                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.border = border
                if isinstance(value, str):
                    cell.alignment = Alignment(horizontal='left', vertical='center')
                else:
                    cell.alignment = Alignment(horizontal='right', vertical='center')

        # Keep title and header visible
        ws.freeze_panes = 'A4'

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output


export_service = ExportService()
