"""
割引販売データ集計
完了済み受注を毎日集計し、顧客・受注明細・商品の3シートのExcelを出力する
"""

__version__ = '1.0.0'
