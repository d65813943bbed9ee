from hotwallet_refill.models.blockchain import Blockchain
from hotwallet_refill.models.wallet import Wallet, WalletType
from hotwallet_refill.models.asset import Asset, NATIVE_ASSET_ADDRESS
from hotwallet_refill.models.refill_transaction import RefillTransaction, RefillStatus
